"""
Shopify Admin GraphQL client.

One instance per inbound request: the shop domain and access token come from
the caller's headers, so nothing here is shared between requests.
"""

import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import requests

from .exceptions import DeadlineExceededError, ShopifyAPIError, ShopifyTransportError, ShopifyUserError
from .polling import Deadline

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-07"


def normalize_shop_domain(shop_domain: str) -> str:
    """Reduce a shop URL or bare shop name to ``name.myshopify.com``."""
    domain = shop_domain.strip()
    for prefix in ('https://', 'http://'):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.split('/')[0]
    if domain and '.' not in domain:
        domain += '.myshopify.com'
    return domain


class ShopifyGraphQLClient:
    """Posts GraphQL documents to a single shop's Admin API endpoint."""

    def __init__(self, shop_domain: str, access_token: str,
                 api_version: str = DEFAULT_API_VERSION,
                 timeout: float = 30, max_retries: int = 3,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.shop_domain = normalize_shop_domain(shop_domain)
        self.access_token = access_token.strip()
        self.api_version = api_version
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.sleep = sleep

        self.graphql_url = f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"
        self.session = session or requests.Session()
        self.session.headers.update({
            'X-Shopify-Access-Token': self.access_token,
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        })

        logger.debug(f"GraphQL URL: {self.graphql_url}")

    def _backoff(self, attempt: int) -> float:
        return 2 ** attempt + random.uniform(0, 1)

    def _retry_after(self, response, attempt: int) -> float:
        try:
            return float(response.headers.get('Retry-After'))
        except (TypeError, ValueError):
            return self._backoff(attempt)

    @staticmethod
    def _is_throttled(body: Dict[str, Any]) -> bool:
        errors = body.get('errors')
        if not isinstance(errors, list):
            return False
        return any(
            isinstance(err, dict) and (err.get('extensions') or {}).get('code') == 'THROTTLED'
            for err in errors
        )

    def _wait(self, seconds: float, deadline: Optional[Deadline]) -> None:
        """Sleep before a retry, unless the deadline would pass first."""
        remaining = deadline.remaining() if deadline is not None else None
        if remaining is not None and seconds >= remaining:
            raise DeadlineExceededError(
                f"Request deadline of {deadline.seconds}s leaves no time to wait {seconds:.1f}s for a retry"
            )
        self.sleep(seconds)

    def execute(self, query: str, timeout: Optional[float] = None,
                deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """
        POST a GraphQL document and return the decoded response body.

        Rate limiting (HTTP 429 or a THROTTLED error) is retried with
        exponential backoff. Everything else that keeps us from getting a JSON
        body raises ShopifyTransportError; GraphQL errors are returned as-is.
        With a ``deadline``, every attempt's timeout and every retry wait is
        capped to the time left, and DeadlineExceededError is raised once it
        runs out.
        """
        timeout = self.timeout if timeout is None else timeout

        for attempt in range(self.max_retries):
            if deadline is not None:
                deadline.check('Shopify request')
                attempt_timeout = deadline.timeout_for(timeout)
            else:
                attempt_timeout = timeout

            try:
                response = self.session.post(
                    self.graphql_url,
                    json={'query': query},
                    timeout=attempt_timeout,
                )
            except requests.exceptions.RequestException as e:
                logger.error(f"Shopify request failed: {e}")
                raise ShopifyTransportError(f"Shopify request failed: {e}") from e

            if response.status_code == 429:
                if attempt < self.max_retries - 1:
                    wait_time = self._retry_after(response, attempt)
                    logger.warning(f"Rate limited, waiting {wait_time:.1f}s before retry {attempt + 1}/{self.max_retries}")
                    self._wait(wait_time, deadline)
                    continue
                raise ShopifyTransportError("Rate limited after all retries", status_code=429)

            if response.status_code >= 400:
                logger.error(f"Shopify returned HTTP {response.status_code}: {response.text[:500]}")
                raise ShopifyTransportError(
                    f"Shopify returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            try:
                body = response.json()
            except ValueError as e:
                raise ShopifyTransportError(
                    "Shopify returned a non-JSON response",
                    status_code=response.status_code,
                ) from e

            if not isinstance(body, dict):
                raise ShopifyTransportError("Shopify returned an unexpected response body",
                                            status_code=response.status_code)

            if self._is_throttled(body) and attempt < self.max_retries - 1:
                wait_time = self._backoff(attempt)
                logger.warning(f"GraphQL throttled, waiting {wait_time:.1f}s before retry {attempt + 1}/{self.max_retries}")
                self._wait(wait_time, deadline)
                continue

            return body

        raise ShopifyTransportError("Max retries exceeded")

    def query(self, query: str, timeout: Optional[float] = None,
              deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Execute a document and return its ``data``, raising on top-level errors."""
        body = self.execute(query, timeout=timeout, deadline=deadline)

        if body.get('errors'):
            logger.error(f"GraphQL errors: {body['errors']}")
            errors = body['errors'] if isinstance(body['errors'], list) else [body['errors']]
            raise ShopifyAPIError("Shopify API error", errors=errors)

        return body.get('data') or {}

    def mutate(self, query: str, root_field: str, timeout: Optional[float] = None,
               deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Execute a mutation and return its payload, raising on ``userErrors``."""
        data = self.query(query, timeout=timeout, deadline=deadline)

        payload = data.get(root_field)
        if not isinstance(payload, dict):
            raise ShopifyAPIError(f"{root_field} returned no payload")

        user_errors = payload.get('userErrors') or payload.get('mediaUserErrors') or []
        if user_errors:
            logger.warning(f"{root_field} user errors: {user_errors}")
            raise ShopifyUserError(f"{root_field} failed", errors=user_errors)

        return payload
