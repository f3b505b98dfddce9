"""
Database Models for the Shopify Product Bridge

Local mirror of the remote product, variant and image identifiers created
through the Shopify Admin API. Rows are only written after a successful
remote creation sequence and are never updated afterwards.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship, validates
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

Base = declarative_base()

def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)

class Product(Base):
    """Product created on Shopify."""
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    shopify_product_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    variations = relationship(
        "Variation",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Variation.id",
    )

    @validates('title')
    def validate_title(self, key, title):
        if not title or len(title.strip()) == 0:
            raise ValueError("Product title cannot be empty")
        return title

    def __repr__(self):
        return f"<Product(id={self.id}, shopify_product_id='{self.shopify_product_id}', title='{self.title}')>"

class Variation(Base):
    """Product variant; the title holds up to three slash-separated option values."""
    __tablename__ = 'variations'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    shopify_variant_id = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    price = Column(String(32), nullable=False)  # Decimal kept as string, as Shopify returns it
    inventory_quantity = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    product = relationship("Product", back_populates="variations")
    images = relationship(
        "Image",
        back_populates="variation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Image.id",
    )

    __table_args__ = (
        Index('idx_variation_product', 'product_id'),
        Index('idx_variation_shopify', 'shopify_variant_id'),
    )

    @validates('price')
    def validate_price(self, key, price):
        try:
            value = Decimal(str(price))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Price must be numeric, got {price!r}")
        if not value.is_finite() or value < 0:
            raise ValueError("Price must be a non-negative number")
        return str(price)

    @validates('inventory_quantity')
    def validate_inventory_quantity(self, key, quantity):
        if quantity is None:
            return 0
        if int(quantity) < 0:
            raise ValueError("Inventory quantity cannot be negative")
        return int(quantity)

    def __repr__(self):
        return f"<Variation(id={self.id}, title='{self.title}', price='{self.price}')>"

class Image(Base):
    """Image attached to a variant."""
    __tablename__ = 'images'

    id = Column(Integer, primary_key=True)
    variation_id = Column(Integer, ForeignKey('variations.id', ondelete='CASCADE'), nullable=False)
    src = Column(String(2048), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    variation = relationship("Variation", back_populates="images")

    __table_args__ = (
        Index('idx_image_variation', 'variation_id'),
    )

    def __repr__(self):
        return f"<Image(id={self.id}, src='{self.src}')>"
