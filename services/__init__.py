"""
Service modules for the Shopify product bridge
"""

from .exceptions import (
    ShopifyBridgeError,
    MissingCredentialsError,
    ShopifyTransportError,
    DeadlineExceededError,
    ShopifyAPIError,
    ShopifyUserError,
)
from .shopify_client import ShopifyGraphQLClient
from .product_creation_service import (
    ProductCreationService,
    ProductCreationResult,
    CreationSettings,
    extract_options,
)

__all__ = [
    'ShopifyBridgeError',
    'MissingCredentialsError',
    'ShopifyTransportError',
    'DeadlineExceededError',
    'ShopifyAPIError',
    'ShopifyUserError',
    'ShopifyGraphQLClient',
    'ProductCreationService',
    'ProductCreationResult',
    'CreationSettings',
    'extract_options',
]
