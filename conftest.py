"""Pytest configuration and fixtures for the test suite."""
import re
import pytest
from unittest.mock import Mock

from database import init_database, close_database
from services.shopify_client import ShopifyGraphQLClient


class FakeClock:
    """Monotonic clock whose sleep only advances time."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingLogger:
    """Collects record(level, message, fields) calls."""

    def __init__(self):
        self.records = []

    def record(self, level, message, fields=None):
        self.records.append((level, message, fields or {}))

    def messages(self, level=None):
        return [message for lvl, message, _ in self.records if level is None or lvl == level]


class FakeShopify(ShopifyGraphQLClient):
    """
    In-memory Shopify answering GraphQL documents by operation.

    Products, variants and media are derived from the documents themselves so
    tests only script the failures they care about via ``override``.
    """

    def __init__(self):
        super().__init__('test-shop', 'test-token', session=Mock(), sleep=lambda seconds: None)
        self.calls = []
        self.overrides = []
        self.product_id = 'gid://shopify/Product/1001'
        self.product_title = None
        self.options = []
        self.variants = []
        self.media = []
        self.media_status = 'READY'
        self.attachments = []

    def override(self, operation, body, contains=None):
        """Answer the next matching call with ``body`` (a response dict or an exception)."""
        self.overrides.append((operation, contains, body))

    def operations(self):
        return [operation for operation, _ in self.calls]

    @staticmethod
    def operation_for(query):
        for name in ('productCreateMedia', 'productVariantsBulkCreate', 'productVariantAppendMedia', 'productCreate'):
            if f"{name}(" in query:
                return name
        if 'media(first' in query:
            return 'mediaStatus'
        if 'variants(first' in query:
            return 'variants'
        raise AssertionError(f"Unknown document: {query}")

    def execute(self, query, timeout=None, deadline=None):
        operation = self.operation_for(query)
        self.calls.append((operation, query))

        for index, (name, contains, body) in enumerate(self.overrides):
            if name == operation and (contains is None or contains in query):
                del self.overrides[index]
                if isinstance(body, Exception):
                    raise body
                return body

        return getattr(self, f"_handle_{operation}")(query)

    def _handle_productCreate(self, query):
        self.product_title = re.search(r'title: "((?:[^"\\]|\\.)*)"', query).group(1)
        self.options = []
        for position, match in enumerate(re.finditer(r'\{name: "([^"]+)", values: \[(.*?)\]\}', query), start=1):
            self.options.append({
                'id': f"gid://shopify/ProductOption/{position}",
                'name': match.group(1),
                'position': position,
                'values': re.findall(r'name: "([^"]+)"', match.group(2)),
            })
        return {'data': {'productCreate': {
            'product': {'id': self.product_id, 'title': self.product_title, 'options': self.options},
            'userErrors': [],
        }}}

    def _handle_productVariantsBulkCreate(self, query):
        self.variants = []
        for number, match in enumerate(re.finditer(r'\{price: "([^"]+)", optionValues: \[(.*?)\](.*?)\}\]?(?:,|\n)', query), start=1):
            names = re.findall(r'name: "([^"]+)"', match.group(2))
            quantity = re.search(r'availableQuantity: (\d+)', match.group(3))
            self.variants.append({
                'id': f"gid://shopify/ProductVariant/{number}",
                'title': ' / '.join(names),
                'price': match.group(1),
                'sku': '',
                'inventoryQuantity': int(quantity.group(1)) if quantity else 0,
            })
        return {'data': {'productVariantsBulkCreate': {
            'productVariants': list(self.variants),
            'userErrors': [],
        }}}

    def _handle_variants(self, query):
        return {'data': {'product': {'variants': {
            'edges': [{'node': dict(variant)} for variant in self.variants]
        }}}}

    def _handle_productCreateMedia(self, query):
        src = re.search(r'originalSource: "([^"]+)"', query).group(1)
        media_id = f"gid://shopify/MediaImage/{len(self.media) + 1}"
        self.media.append({'id': media_id, 'src': src})
        return {'data': {'productCreateMedia': {
            'media': [{'id': media_id, 'status': 'UPLOADED'}],
            'mediaUserErrors': [],
        }}}

    def _handle_mediaStatus(self, query):
        return {'data': {'product': {'media': {
            'edges': [{'node': {'id': item['id'], 'status': self.media_status}} for item in self.media]
        }}}}

    def _handle_productVariantAppendMedia(self, query):
        variant_id = re.search(r'variantId: "([^"]+)"', query).group(1)
        media_ids = re.findall(r'mediaIds: \[(.*?)\]', query)
        self.attachments.append((variant_id, re.findall(r'"([^"]+)"', media_ids[0])))
        return {'data': {'productVariantAppendMedia': {
            'productVariants': [{'id': variant_id}],
            'userErrors': [],
        }}}


@pytest.fixture
def db_manager():
    """Fresh in-memory database per test."""
    manager = init_database('sqlite:///:memory:', create_tables=True)
    yield manager
    close_database()


@pytest.fixture
def app():
    """Create a test Flask application."""
    from app import create_app

    app = create_app('testing')
    yield app
    close_database()


@pytest.fixture
def client(app):
    """Create a test client for API testing."""
    with app.test_client() as client:
        yield client


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return RecordingLogger()


@pytest.fixture
def fake_shopify():
    return FakeShopify()


@pytest.fixture
def shopify_headers():
    return {
        'X-Shopify-Shop-Domain': 'test-shop.myshopify.com',
        'X-Shopify-Access-Token': 'shpat_test',
    }


@pytest.fixture
def product_payload():
    """A valid product creation request body."""
    return {
        'title': 'Linen Shirt',
        'description': '<p>Breathable linen.</p>',
        'variations': [
            {
                'title': 'Red / Small',
                'price': 19.99,
                'inventory_quantity': 5,
                'images': [
                    {'src': 'https://cdn.example.com/red-small-front.jpg'},
                    {'src': 'https://cdn.example.com/red-small-back.jpg'},
                ],
            },
            {'title': 'Red / Medium', 'price': '21.50', 'inventory_quantity': 3},
            {
                'title': 'Blue / Large',
                'price': 24,
                'images': [{'src': 'https://cdn.example.com/blue-large.jpg'}],
            },
        ],
    }
