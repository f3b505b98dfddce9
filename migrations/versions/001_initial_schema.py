"""Initial schema: products, variations, images

Revision ID: 001
Revises:
Create Date: 2025-08-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shopify_product_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_products_shopify_product_id', 'products', ['shopify_product_id'])

    op.create_table(
        'variations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shopify_variant_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('price', sa.String(32), nullable=False),
        sa.Column('inventory_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_variation_product', 'variations', ['product_id'])
    op.create_index('idx_variation_shopify', 'variations', ['shopify_variant_id'])

    op.create_table(
        'images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variation_id', sa.Integer(),
                  sa.ForeignKey('variations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('src', sa.String(2048), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_image_variation', 'images', ['variation_id'])


def downgrade() -> None:
    op.drop_index('idx_image_variation', table_name='images')
    op.drop_table('images')
    op.drop_index('idx_variation_shopify', table_name='variations')
    op.drop_index('idx_variation_product', table_name='variations')
    op.drop_table('variations')
    op.drop_index('ix_products_shopify_product_id', table_name='products')
    op.drop_table('products')
