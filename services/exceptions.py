"""
Error types raised while talking to the Shopify Admin API.

Transport failures (network, HTTP status, undecodable bodies) and
application failures (GraphQL ``errors`` and mutation ``userErrors``) are
kept apart so callers can decide which ones to retry.
"""

from typing import Any, Dict, List, Optional


class ShopifyBridgeError(Exception):
    """Base class for product bridge errors."""

    error_code = 'BRIDGE_ERROR'

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'error_code': self.error_code,
            'errors': self.errors,
        }


class MissingCredentialsError(ShopifyBridgeError):
    """Shop domain or access token missing from the request."""

    error_code = 'MISSING_CREDENTIALS'


class ShopifyTransportError(ShopifyBridgeError):
    """The Shopify endpoint could not be reached or answered garbage."""

    error_code = 'TRANSPORT_ERROR'

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[Any]] = None):
        super().__init__(message, errors)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result['status_code'] = self.status_code
        return result


class DeadlineExceededError(ShopifyTransportError):
    """The overall request deadline ran out before a remote call."""

    error_code = 'DEADLINE_EXCEEDED'


class ShopifyAPIError(ShopifyBridgeError):
    """Top-level GraphQL ``errors`` array, or a response missing its payload."""

    error_code = 'GRAPHQL_ERROR'


class ShopifyUserError(ShopifyAPIError):
    """Mutation rejected with ``userErrors`` (or ``mediaUserErrors``)."""

    error_code = 'USER_ERROR'

    def messages(self) -> List[str]:
        return [str(err.get('message', '')) for err in self.errors if isinstance(err, dict)]

    def is_duplicate(self) -> bool:
        """True when every user error reports the media as already attached."""
        messages = [message.lower() for message in self.messages()]
        if not messages:
            return False
        return all('already' in message or 'duplicate' in message for message in messages)
