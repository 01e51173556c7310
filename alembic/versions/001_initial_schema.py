"""Initial schema - stock records and connected shops

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False),
        sa.Column('shopify_access_token', sa.Text(), nullable=True),
        sa.Column('etsy_onboarded', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('etsy_access_token', sa.Text(), nullable=True),
        sa.Column('etsy_refresh_token', sa.Text(), nullable=True),
        sa.Column('etsy_token_expires', sa.DateTime(), nullable=True),
        sa.Column('etsy_code_reference', sa.Text(), nullable=True),
        sa.Column('etsy_code_verifier', sa.Text(), nullable=True),
        sa.Column('etsy_shop_id', sa.BigInteger(), nullable=True),
        sa.Column('etsy_shop_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text("timezone('utc', now())")),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text("timezone('utc', now())")),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shops_shop_domain', 'shops', ['shop_domain'], unique=True)

    op.create_table(
        'stock_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=True),
        # Shopify side
        sa.Column('shopify_current', sa.Integer(), nullable=True),
        sa.Column('shopify_previous', sa.Integer(), nullable=True),
        sa.Column('shopify_initialized', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('shopify_location_id', sa.String(length=255), nullable=True),
        sa.Column('shopify_variant_id', sa.String(length=255), nullable=True),
        sa.Column('shopify_variant_name', sa.String(length=500), nullable=True),
        sa.Column('shopify_parent_id', sa.String(length=255), nullable=True),
        sa.Column('shopify_parent_title', sa.String(length=500), nullable=True),
        # Etsy side
        sa.Column('etsy_current', sa.Integer(), nullable=True),
        sa.Column('etsy_previous', sa.Integer(), nullable=True),
        sa.Column('etsy_initialized', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('etsy_product_id', sa.BigInteger(), nullable=True),
        sa.Column('etsy_listing_id', sa.BigInteger(), nullable=True),
        sa.Column('etsy_shop_id', sa.BigInteger(), nullable=True),
        sa.Column('etsy_title', sa.String(length=500), nullable=True),
        sa.Column('etsy_variation', sa.String(length=500), nullable=True),
        # Operator instructions
        sa.Column('override_requested', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('override_value', sa.Integer(), nullable=True),
        sa.Column('override_platform', sa.String(length=20), nullable=True),
        sa.Column('link_sku_requested', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False, server_default=sa.text("timezone('utc', now())")),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text("timezone('utc', now())")),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shop_domain', 'key', name='uq_stock_records_shop_key'),
    )
    op.create_index('ix_stock_records_shop_domain', 'stock_records', ['shop_domain'])
    op.create_index('ix_stock_records_key', 'stock_records', ['key'])
    op.create_index('ix_stock_records_sku', 'stock_records', ['sku'])
    op.create_index('ix_stock_records_shopify_variant_id', 'stock_records', ['shopify_variant_id'])
    op.create_index('ix_stock_records_etsy_product_id', 'stock_records', ['etsy_product_id'])
    op.create_index('ix_stock_records_etsy_listing_id', 'stock_records', ['etsy_listing_id'])
    op.create_index('ix_stock_records_override_requested', 'stock_records', ['override_requested'])
    op.create_index('ix_stock_records_link_sku_requested', 'stock_records', ['link_sku_requested'])


def downgrade() -> None:
    # Drop all tables in reverse order
    op.drop_table('stock_records')
    op.drop_table('shops')
