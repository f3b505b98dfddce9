"""Product API endpoints: create a product on Shopify and read the local mirror."""
from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError
from typing import Tuple
import logging

from database import db_session_scope
from logging_config import StructuredLogRecorder
from repositories.product_repository import ProductRepository
from schemas import ProductCreateSchema, ProductSchema
from services.exceptions import MissingCredentialsError
from services.product_creation_service import CreationSettings, ProductCreationService
from services.shopify_client import ShopifyGraphQLClient

# Configure logging
logger = logging.getLogger(__name__)

# Create Blueprint
products_bp = Blueprint('products', __name__, url_prefix='/api/products')

SHOP_DOMAIN_HEADER = 'X-Shopify-Shop-Domain'
ACCESS_TOKEN_HEADER = 'X-Shopify-Access-Token'
LOCATION_HEADER = 'X-Shopify-Location-Id'

STATUS_BY_ERROR_CODE = {
    'MISSING_CREDENTIALS': 400,
    'VALIDATION_ERROR': 422,
    'GRAPHQL_ERROR': 502,
    'USER_ERROR': 502,
    'TRANSPORT_ERROR': 502,
    'DEADLINE_EXCEEDED': 504,
}


def get_shopify_credentials() -> Tuple[str, str]:
    """Read the shop domain and access token headers."""
    shop_domain = (request.headers.get(SHOP_DOMAIN_HEADER) or '').strip()
    access_token = (request.headers.get(ACCESS_TOKEN_HEADER) or '').strip()

    if not shop_domain or not access_token:
        missing = [
            header for header, value in (
                (SHOP_DOMAIN_HEADER, shop_domain),
                (ACCESS_TOKEN_HEADER, access_token),
            ) if not value
        ]
        raise MissingCredentialsError(
            'Missing Shopify shop domain or access token',
            errors=[f"{header} header is required" for header in missing],
        )

    return shop_domain, access_token


def build_client(shop_domain: str, access_token: str) -> ShopifyGraphQLClient:
    """Create a Shopify client for this request's shop."""
    return ShopifyGraphQLClient(
        shop_domain,
        access_token,
        api_version=current_app.config.get('SHOPIFY_API_VERSION', '2025-07'),
        timeout=current_app.config.get('SHOPIFY_REQUEST_TIMEOUT', 30),
        max_retries=current_app.config.get('SHOPIFY_MAX_RETRIES', 3),
    )


@products_bp.route('', methods=['POST'])
def create_product():
    """Create a product with variations and variant images on Shopify."""
    try:
        shop_domain, access_token = get_shopify_credentials()
    except MissingCredentialsError as e:
        logger.warning(f"Rejected product creation: {e.message}")
        return jsonify({'success': False, **e.to_dict()}), 400

    payload = request.get_json(silent=True)
    try:
        data = ProductCreateSchema().load(payload if payload is not None else {})
    except ValidationError as err:
        return jsonify({
            'success': False,
            'message': 'The given data was invalid.',
            'error_code': 'VALIDATION_ERROR',
            'errors': err.messages,
        }), 422

    service = ProductCreationService(
        build_client(shop_domain, access_token),
        settings=CreationSettings.from_config(current_app.config),
        recorder=StructuredLogRecorder(logger),
    )

    try:
        result = service.create_product_with_variations(
            data, location_id=request.headers.get(LOCATION_HEADER)
        )
    except Exception as e:
        logger.exception(f"Unexpected error creating product: {e}")
        return jsonify({
            'success': False,
            'message': 'Product creation failed unexpectedly',
            'error_code': 'INTERNAL_ERROR',
            'errors': [],
        }), 500

    if result.success:
        return jsonify(result.to_dict()), 201

    return jsonify(result.to_dict()), STATUS_BY_ERROR_CODE.get(result.error_code, 502)


@products_bp.route('/<int:product_id>', methods=['GET'])
def get_product(product_id):
    """Get a stored product with its variations and images."""
    with db_session_scope() as session:
        product = ProductRepository(session).get_with_variations(product_id)
        if not product:
            return jsonify({'success': False, 'message': 'Product not found'}), 404
        data = ProductSchema().dump(product)

    return jsonify({'success': True, 'product': data}), 200
