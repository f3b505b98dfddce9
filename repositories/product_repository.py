"""
Product Repository for managing product database operations.
"""

import logging
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import Session, selectinload

from models import Product, Variation, Image
from .base import BaseRepository

logger = logging.getLogger(__name__)

class ProductRepository(BaseRepository):
    """Repository for Product model operations."""

    def __init__(self, session: Session):
        super().__init__(Product, session)

    def get_by_shopify_id(self, shopify_id: str) -> Optional[Product]:
        """Get product by Shopify product ID."""
        return self.get_by(shopify_product_id=shopify_id)

    def get_with_variations(self, product_id: int) -> Optional[Product]:
        """Get a product with its variations and their images eagerly loaded."""
        return self.session.query(Product)\
            .options(selectinload(Product.variations).selectinload(Variation.images))\
            .filter(Product.id == product_id)\
            .first()

    def create_with_variations(self, shopify_product_id: str, title: str,
                               description: Optional[str],
                               variations: List[Dict[str, Any]]) -> Product:
        """
        Write one product with its variations and images.

        Runs inside the caller's transaction, so a failure part way leaves
        nothing behind once the caller rolls back.

        Args:
            shopify_product_id: Remote product GID
            title: Remote product title
            description: Optional HTML description
            variations: Dicts with shopify_variant_id, title, price,
                inventory_quantity and images (list of source URLs)

        Returns:
            The flushed Product instance
        """
        product = Product(
            shopify_product_id=shopify_product_id,
            title=title,
            description=description,
        )

        for item in variations:
            variation = Variation(
                shopify_variant_id=item['shopify_variant_id'],
                title=item['title'],
                price=item['price'],
                inventory_quantity=item.get('inventory_quantity') or 0,
            )
            variation.images = [Image(src=src) for src in item.get('images', [])]
            product.variations.append(variation)

        self.session.add(product)
        self.session.flush()

        logger.info(
            f"Stored product {product.id} ({shopify_product_id}) with "
            f"{len(product.variations)} variations"
        )
        return product
