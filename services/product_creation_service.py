"""
Product Creation Service

Creates a product with its variants and variant images on Shopify, then
mirrors the result into the local database:

1. make the title unique with a timestamp suffix
2. productCreate with the option schema extracted from the variation titles
3. productVariantsBulkCreate for every variation
4. wait for Shopify to index, re-fetch the variants
5. per variant image: create media, poll until READY, append it to the variant
6. wait again, re-fetch the variants, store product, variations and images

Only steps 2 and 3 decide success. Image attachment, the re-fetches and
the local write are best effort: their failures are logged and reported
but never turn a created product into a failed request.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from marshmallow import ValidationError, validate
from sqlalchemy.exc import SQLAlchemyError

from database import db_session_scope
from logging_config import StructuredLogRecorder
from repositories.product_repository import ProductRepository
from schemas import MAX_TITLE_LENGTH, ProductSchema

from .exceptions import (
    DeadlineExceededError, ShopifyAPIError, ShopifyBridgeError, ShopifyUserError
)
from .polling import Deadline, PollOutcome, PollPolicy, poll_with_backoff
from .shopify_queries import (
    OptionValueInput, VariantInput,
    build_media_create_mutation, build_media_status_query,
    build_product_create_mutation, build_variant_append_media_mutation,
    build_variants_bulk_create_mutation, build_variants_query,
)

logger = logging.getLogger(__name__)

OPTION_NAMES = ('Color', 'Size', 'Material')

_url_validator = validate.URL(relative=False, schemes={'http', 'https'})


class LogRecorder(Protocol):
    def record(self, level: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        ...


def option_name_for(position: int) -> str:
    """Option name for a zero-based title segment position."""
    if position < len(OPTION_NAMES):
        return OPTION_NAMES[position]
    return f"Option{position + 1}"


def split_variation_title(title: str) -> List[str]:
    """Split a variation title into trimmed segments, keeping empty positions."""
    return [segment.strip() for segment in str(title).split('/')]


def normalize_title(title: str) -> str:
    """Canonical "A / B / C" form used to match Shopify variant titles."""
    return ' / '.join(segment for segment in split_variation_title(title) if segment)


def extract_options(variations: List[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """
    Build the product option schema from variation titles.

    Segment N of every title feeds the option at position N (Color, Size,
    Material, then Option4...). Values are deduplicated and keep the order
    they were first seen in; empty segments are ignored.

    >>> extract_options([{'title': 'Red / Small'}, {'title': 'Blue / Small'}])
    {'Color': ['Red', 'Blue'], 'Size': ['Small']}
    """
    by_position: Dict[int, List[str]] = {}
    for variation in variations:
        for position, value in enumerate(split_variation_title(variation['title'])):
            if not value:
                continue
            values = by_position.setdefault(position, [])
            if value not in values:
                values.append(value)

    return {option_name_for(position): by_position[position] for position in sorted(by_position)}


def is_valid_image_url(src: Any) -> bool:
    if not isinstance(src, str) or not src:
        return False
    try:
        _url_validator(src)
    except ValidationError:
        return False
    return True


@dataclass
class RemoteOption:
    id: str
    name: str
    position: Optional[int] = None
    values: List[str] = field(default_factory=list)


@dataclass
class CreatedProduct:
    """productCreate result: the product id, title and option definitions."""
    id: str
    title: str
    options: List[RemoteOption] = field(default_factory=list)

    @classmethod
    def from_payload(cls, product: Mapping[str, Any]) -> 'CreatedProduct':
        options = [
            RemoteOption(
                id=option['id'],
                name=option.get('name', ''),
                position=option.get('position'),
                values=list(option.get('values') or []),
            )
            for option in product.get('options') or []
            if option.get('id')
        ]
        return cls(id=product['id'], title=product.get('title') or '', options=options)

    def option_ids(self) -> Dict[str, str]:
        return {option.name: option.id for option in self.options}


@dataclass
class RemoteVariant:
    id: str
    title: str
    price: str
    sku: Optional[str] = None
    inventory_quantity: int = 0

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> 'RemoteVariant':
        return cls(
            id=node['id'],
            title=node.get('title') or '',
            price=str(node.get('price') or '0'),
            sku=node.get('sku'),
            inventory_quantity=int(node.get('inventoryQuantity') or 0),
        )


@dataclass
class ImageFailure:
    variant_title: str
    src: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {'variant_title': self.variant_title, 'src': self.src, 'reason': self.reason}


@dataclass
class ProductCreationResult:
    success: bool
    message: str
    product: Optional[Dict[str, Any]] = None
    shopify_product_id: Optional[str] = None
    error_code: Optional[str] = None
    errors: List[Any] = field(default_factory=list)
    image_failures: List[ImageFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.success,
            'message': self.message,
        }
        if self.success:
            result['product'] = self.product
            result['shopify_product_id'] = self.shopify_product_id
            result['image_failures'] = [failure.to_dict() for failure in self.image_failures]
            result['warnings'] = self.warnings
        else:
            result['error_code'] = self.error_code
            result['errors'] = self.errors
            if self.shopify_product_id:
                result['shopify_product_id'] = self.shopify_product_id
        return result


@dataclass
class CreationSettings:
    """Timing and retry knobs for the creation sequence."""
    variant_settle_seconds: float = 2.0
    final_settle_seconds: float = 2.0
    media_poll: PollPolicy = field(default_factory=lambda: PollPolicy(10, 1.0, 1.5, 5.0))
    attach_retries: int = 3
    attach_pause: float = 0.5
    request_timeout: float = 30.0
    deadline_seconds: Optional[float] = 120.0
    location_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'CreationSettings':
        return cls(
            variant_settle_seconds=float(config.get('VARIANT_SETTLE_SECONDS', 2.0)),
            final_settle_seconds=float(config.get('FINAL_SETTLE_SECONDS', 2.0)),
            media_poll=PollPolicy(
                max_attempts=int(config.get('MEDIA_POLL_ATTEMPTS', 10)),
                interval=float(config.get('MEDIA_POLL_INTERVAL', 1.0)),
                backoff=float(config.get('MEDIA_POLL_BACKOFF', 1.5)),
                max_interval=config.get('MEDIA_POLL_MAX_INTERVAL', 5.0),
            ),
            attach_retries=int(config.get('MEDIA_ATTACH_RETRIES', 3)),
            attach_pause=float(config.get('MEDIA_ATTACH_PAUSE', 0.5)),
            request_timeout=float(config.get('SHOPIFY_REQUEST_TIMEOUT', 30.0)),
            deadline_seconds=config.get('REQUEST_DEADLINE_SECONDS') or None,
            location_id=config.get('SHOPIFY_LOCATION_ID') or None,
        )


class ProductCreationService:
    """Runs the Shopify product creation sequence for one request."""

    def __init__(self, client, settings: Optional[CreationSettings] = None,
                 recorder: Optional[LogRecorder] = None,
                 session_scope: Optional[Callable] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 now: Optional[Callable[[], datetime]] = None):
        self.client = client
        self.settings = settings or CreationSettings()
        self.recorder = recorder or StructuredLogRecorder(logger)
        self.session_scope = session_scope or db_session_scope
        self.sleep = sleep
        self.clock = clock
        self.now = now or (lambda: datetime.now(timezone.utc))
        self._attachment_calls = 0

    def unique_title(self, title: str) -> str:
        """Append a timestamp so repeated requests never collide on title."""
        suffix = self.now().strftime('%Y%m%d%H%M%S')
        base = title.strip()[:MAX_TITLE_LENGTH - len(suffix) - 1]
        return f"{base} {suffix}"

    def create_product_with_variations(self, data: Mapping[str, Any],
                                       location_id: Optional[str] = None) -> ProductCreationResult:
        """
        Create the product, its variants and variant images on Shopify and store them.

        Args:
            data: Validated request body (title, description, variations)
            location_id: Inventory location for inventory quantities; falls
                back to the configured default location

        Returns:
            ProductCreationResult; success is True once product and variants
            exist remotely
        """
        deadline = Deadline(self.settings.deadline_seconds, self.clock)
        location_id = location_id or self.settings.location_id
        self._attachment_calls = 0

        variations = list(data['variations'])
        description = data.get('description')
        title = self.unique_title(data['title'])
        options = extract_options(variations)

        self.recorder.record('info', 'Starting product creation', {
            'title': title,
            'variations': len(variations),
            'options': list(options),
        })

        try:
            product = self._create_product(title, description, options, deadline)
        except ShopifyBridgeError as e:
            self.recorder.record('error', 'Shopify product creation failed', {
                'error_code': e.error_code,
                'errors': e.errors,
                'message': e.message,
            })
            return ProductCreationResult(
                success=False,
                message=f"Product creation failed on Shopify: {e.message}",
                error_code=e.error_code,
                errors=e.errors,
            )

        warnings: List[str] = []
        try:
            created_variants = self._create_variants(product, variations, location_id, warnings, deadline)
        except ShopifyBridgeError as e:
            self.recorder.record('error', 'Shopify variant creation failed', {
                'product_id': product.id,
                'error_code': e.error_code,
                'errors': e.errors,
                'message': e.message,
            })
            return ProductCreationResult(
                success=False,
                message=f"Variant creation failed on Shopify: {e.message}",
                shopify_product_id=product.id,
                error_code=e.error_code,
                errors=e.errors,
            )

        self.recorder.record('info', 'Product and variants created on Shopify', {
            'product_id': product.id,
            'variants': len(created_variants),
        })

        known_variants = self._settle_and_fetch(
            product.id, self.settings.variant_settle_seconds, created_variants, warnings, deadline
        )

        image_failures: List[ImageFailure] = []
        attached, deadline_hit = self._attach_images(
            product.id, known_variants, variations, image_failures, deadline
        )

        if deadline_hit:
            warnings.append('Request deadline reached; skipped the final variant refresh')
            final_variants = known_variants
        else:
            final_variants = self._settle_and_fetch(
                product.id, self.settings.final_settle_seconds, known_variants, warnings, deadline
            )

        snapshot = self._persist(product, description, final_variants, attached, warnings)

        return ProductCreationResult(
            success=True,
            message='Product and variants created successfully',
            product=snapshot,
            shopify_product_id=product.id,
            image_failures=image_failures,
            warnings=warnings,
        )

    # -- remote steps -----------------------------------------------------

    def _create_product(self, title: str, description: Optional[str],
                        options: Dict[str, List[str]], deadline: Deadline) -> CreatedProduct:
        deadline.check('product creation')
        payload = self.client.mutate(
            build_product_create_mutation(title, description, options),
            'productCreate',
            timeout=self.settings.request_timeout,
            deadline=deadline,
        )

        product = payload.get('product') or {}
        if not product.get('id'):
            raise ShopifyAPIError('Shopify did not return a product id')

        created = CreatedProduct.from_payload(product)
        if not created.title:
            created.title = title
        self.recorder.record('info', 'Product created', {
            'product_id': created.id,
            'options': [option.name for option in created.options],
        })
        return created

    def _create_variants(self, product: CreatedProduct, variations: List[Mapping[str, Any]],
                         location_id: Optional[str], warnings: List[str],
                         deadline: Deadline) -> List[RemoteVariant]:
        option_ids = product.option_ids()
        inputs = []

        for variation in variations:
            option_values = []
            for position, value in enumerate(split_variation_title(variation['title'])):
                option_id = option_ids.get(option_name_for(position))
                if value and option_id:
                    option_values.append(OptionValueInput(option_id=option_id, name=value))

            if not option_values:
                message = f"Variation '{variation['title']}' matched no product options and was not created"
                self.recorder.record('warning', message, {'product_id': product.id})
                warnings.append(message)
                continue

            inputs.append(VariantInput(
                price=variation['price'],
                option_values=option_values,
                inventory_quantity=variation.get('inventory_quantity'),
                location_id=location_id,
            ))

        if not inputs:
            raise ShopifyAPIError('No variation matched the options Shopify returned')

        deadline.check('variant creation')
        payload = self.client.mutate(
            build_variants_bulk_create_mutation(product.id, inputs),
            'productVariantsBulkCreate',
            timeout=self.settings.request_timeout,
            deadline=deadline,
        )

        return [
            RemoteVariant.from_node(node)
            for node in payload.get('productVariants') or []
            if node and node.get('id')
        ]

    def _fetch_variants(self, product_id: str, deadline: Deadline) -> List[RemoteVariant]:
        deadline.check('variant fetch')
        data = self.client.query(
            build_variants_query(product_id),
            timeout=self.settings.request_timeout,
            deadline=deadline,
        )
        edges = ((data.get('product') or {}).get('variants') or {}).get('edges') or []
        return [RemoteVariant.from_node(edge['node']) for edge in edges if edge.get('node')]

    def _settle_and_fetch(self, product_id: str, settle_seconds: float,
                          fallback: List[RemoteVariant], warnings: List[str],
                          deadline: Deadline) -> List[RemoteVariant]:
        """Wait for indexing, then re-fetch variants; keep ``fallback`` on failure."""
        self._pause(settle_seconds, deadline)
        try:
            fetched = self._fetch_variants(product_id, deadline)
        except ShopifyBridgeError as e:
            self.recorder.record('warning', 'Variant re-fetch failed, using last known variants', {
                'product_id': product_id,
                'error_code': e.error_code,
                'message': e.message,
            })
            warnings.append(f"Variant refresh failed: {e.message}")
            return fallback
        except Exception as e:
            self.recorder.record('error', 'Unexpected error re-fetching variants, using last known variants', {
                'product_id': product_id,
                'error': repr(e),
            })
            warnings.append(f"Variant refresh failed: {e!r}")
            return fallback

        if not fetched:
            self.recorder.record('warning', 'Variant re-fetch returned no variants', {'product_id': product_id})
            return fallback
        return fetched

    def _attach_images(self, product_id: str, variants: List[RemoteVariant],
                       variations: List[Mapping[str, Any]], failures: List[ImageFailure],
                       deadline: Deadline):
        """
        Attach each variation's images to its matching variant, one at a time.

        Returns the attached sources keyed by normalized variant title and
        whether the deadline cut the step short.
        """
        images_by_title: Dict[str, List[str]] = {}
        for variation in variations:
            sources = images_by_title.setdefault(normalize_title(variation['title']), [])
            for image in variation.get('images') or []:
                src = image.get('src') if isinstance(image, Mapping) else image
                if src not in sources:
                    sources.append(src)

        attached: Dict[str, List[str]] = {}
        for variant in variants:
            key = normalize_title(variant.title)
            sources = images_by_title.get(key)
            if not sources:
                continue

            for src in sources:
                try:
                    reason = self._attach_image(product_id, variant, src, deadline)
                except DeadlineExceededError as e:
                    self.recorder.record('warning', 'Request deadline reached while attaching images', {
                        'product_id': product_id,
                        'variant_id': variant.id,
                        'src': src,
                    })
                    failures.append(ImageFailure(variant.title, src, e.message))
                    return attached, True
                except Exception as e:
                    self.recorder.record('error', 'Unexpected error attaching image', {
                        'product_id': product_id,
                        'variant_id': variant.id,
                        'src': src,
                        'error': repr(e),
                    })
                    reason = f"Unexpected error: {e!r}"

                if reason is None:
                    attached.setdefault(key, []).append(src)
                else:
                    self.recorder.record('warning', 'Image not attached', {
                        'product_id': product_id,
                        'variant_id': variant.id,
                        'src': src,
                        'reason': reason,
                    })
                    failures.append(ImageFailure(variant.title, src, reason))

        return attached, False

    def _attach_image(self, product_id: str, variant: RemoteVariant, src: str,
                      deadline: Deadline) -> Optional[str]:
        """Create, await and attach one image. Returns None or the failure reason."""
        if not is_valid_image_url(src):
            return 'Invalid image URL'

        deadline.check('media creation')
        try:
            payload = self.client.mutate(
                build_media_create_mutation(product_id, src),
                'productCreateMedia',
                timeout=self.settings.request_timeout,
                deadline=deadline,
            )
        except DeadlineExceededError:
            raise
        except ShopifyBridgeError as e:
            return f"Media creation failed: {e.message}"

        media = [item for item in payload.get('media') or [] if item and item.get('id')]
        if not media:
            return 'Media creation returned no media'
        media_id = media[0]['id']

        if media[0].get('status') != 'READY':
            result = poll_with_backoff(
                lambda: self._media_status(product_id, media_id, deadline),
                self.settings.media_poll,
                sleep=lambda seconds: self._pause(seconds, deadline),
                should_continue=lambda: not deadline.expired(),
            )
            if not result.ready:
                return f"Media not ready ({result.outcome.value} after {result.attempts} checks)"

        return self._append_media(product_id, variant, media_id, deadline)

    def _media_status(self, product_id: str, media_id: str, deadline: Deadline) -> Optional[PollOutcome]:
        deadline.check('media status poll')
        try:
            data = self.client.query(
                build_media_status_query(product_id),
                timeout=self.settings.request_timeout,
                deadline=deadline,
            )
        except DeadlineExceededError:
            raise
        except ShopifyBridgeError as e:
            self.recorder.record('warning', 'Media status poll failed', {
                'media_id': media_id,
                'message': e.message,
            })
            return None
        except Exception as e:
            self.recorder.record('warning', 'Media status poll failed unexpectedly', {
                'media_id': media_id,
                'error': repr(e),
            })
            return None

        edges = ((data.get('product') or {}).get('media') or {}).get('edges') or []
        for edge in edges:
            node = edge.get('node') or {}
            if node.get('id') != media_id:
                continue
            status = node.get('status')
            if status == 'READY':
                return PollOutcome.READY
            if status == 'FAILED':
                return PollOutcome.FAILED
        return None

    def _append_media(self, product_id: str, variant: RemoteVariant, media_id: str,
                      deadline: Deadline) -> Optional[str]:
        retries = max(1, self.settings.attach_retries)
        last_error = None

        for attempt in range(1, retries + 1):
            if self._attachment_calls:
                self._pause(self.settings.attach_pause, deadline)
            deadline.check('media attachment')
            self._attachment_calls += 1

            try:
                self.client.mutate(
                    build_variant_append_media_mutation(product_id, variant.id, media_id),
                    'productVariantAppendMedia',
                    timeout=self.settings.request_timeout,
                    deadline=deadline,
                )
            except ShopifyUserError as e:
                if e.is_duplicate():
                    self.recorder.record('info', 'Media already attached to variant', {
                        'variant_id': variant.id,
                        'media_id': media_id,
                    })
                    return None
                return f"Attachment rejected: {'; '.join(e.messages())}"
            except DeadlineExceededError:
                raise
            except ShopifyBridgeError as e:
                last_error = e.message
                self.recorder.record('warning', 'Media attachment failed, retrying', {
                    'variant_id': variant.id,
                    'media_id': media_id,
                    'attempt': attempt,
                    'message': e.message,
                })
                continue
            except Exception as e:
                last_error = repr(e)
                self.recorder.record('warning', 'Media attachment failed unexpectedly, retrying', {
                    'variant_id': variant.id,
                    'media_id': media_id,
                    'attempt': attempt,
                    'error': last_error,
                })
                continue

            self.recorder.record('info', 'Media attached to variant', {
                'variant_id': variant.id,
                'media_id': media_id,
            })
            return None

        return f"Attachment failed after {retries} attempts: {last_error}"

    def _pause(self, seconds: float, deadline: Deadline) -> None:
        if not seconds or seconds <= 0:
            return
        remaining = deadline.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self.sleep(seconds)

    # -- local mirror -----------------------------------------------------

    def _persist(self, product: CreatedProduct, description: Optional[str],
                 variants: List[RemoteVariant], attached: Dict[str, List[str]],
                 warnings: List[str]) -> Optional[Dict[str, Any]]:
        rows = [
            {
                'shopify_variant_id': variant.id,
                'title': variant.title,
                'price': variant.price,
                'inventory_quantity': variant.inventory_quantity,
                'images': attached.get(normalize_title(variant.title), []),
            }
            for variant in variants
        ]

        try:
            with self.session_scope() as session:
                stored = ProductRepository(session).create_with_variations(
                    shopify_product_id=product.id,
                    title=product.title,
                    description=description,
                    variations=rows,
                )
                snapshot = ProductSchema().dump(stored)
        except (SQLAlchemyError, ValueError) as e:
            self.recorder.record('error', 'Failed to store product locally', {
                'product_id': product.id,
                'error': str(e),
            })
            warnings.append(f"Local persistence failed: {e}")
            return None

        self.recorder.record('info', 'Product stored locally', {
            'product_id': product.id,
            'local_id': snapshot.get('id'),
            'variations': len(rows),
        })
        return snapshot
