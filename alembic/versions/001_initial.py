"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Suppliers
    op.create_table(
        'suppliers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=64), nullable=True),
        sa.Column('api_endpoint', sa.Text(), nullable=True),
        sa.Column('api_key', sa.String(length=512), nullable=True),
        sa.Column('api_parameters', sa.JSON(), nullable=False),
        sa.Column('website_login', sa.String(length=255), nullable=True),
        sa.Column('website_password', sa.String(length=512), nullable=True),
        sa.Column('name_comparison_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_name_update', sa.Boolean(), nullable=False),
        sa.Column('one_by_one_mode', sa.Boolean(), nullable=False),
        sa.Column('upload_to_all_marketplaces', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sandbox_mode', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    # Marketplaces
    op.create_table(
        'marketplaces',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('api_key', sa.String(length=512), nullable=True),
        sa.Column('api_endpoint', sa.Text(), nullable=True),
        sa.Column('api_parameters', sa.JSON(), nullable=False),
        sa.Column('login', sa.String(length=255), nullable=True),
        sa.Column('password', sa.String(length=512), nullable=True),
        sa.Column('pricing_action', sa.String(length=16), nullable=False),
        sa.Column('pricing_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sandbox_mode', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("pricing_action IN ('add', 'multiply')", name='ck_marketplace_pricing_action'),
    )

    # Products
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('supplier_id', sa.String(length=36), nullable=True),
        sa.Column('supplier_article', sa.String(length=128), nullable=False),
        sa.Column('marketplace_id', sa.String(length=36), nullable=True),
        sa.Column('marketplace_article', sa.String(length=128), nullable=True),
        sa.Column('name_supplier', sa.Text(), nullable=False),
        sa.Column('name_marketplace', sa.Text(), nullable=True),
        sa.Column('current_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('new_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('price_status', sa.String(length=16), nullable=False),
        sa.Column('pricing_action', sa.String(length=16), nullable=True),
        sa.Column('pricing_value', sa.Numeric(precision=10, scale=4), nullable=True),
        sa.Column('name_comparison_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_name_update', sa.Boolean(), nullable=False),
        sa.Column('brand', sa.String(length=255), nullable=True),
        sa.Column('category_code', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_urls', sa.JSON(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['marketplace_id'], ['marketplaces.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "price_status IN ('increased', 'decreased', 'unchanged', 'missing')",
            name='ck_product_price_status',
        ),
        sa.CheckConstraint(
            "pricing_action IS NULL OR pricing_action IN ('add', 'multiply')",
            name='ck_product_pricing_action',
        ),
    )
    op.create_index('ix_products_supplier_id', 'products', ['supplier_id'])
    op.create_index('ix_products_marketplace_id', 'products', ['marketplace_id'])
    op.create_index('ix_products_marketplace_article', 'products', ['marketplace_article'])

    # Supplier x marketplace switches
    op.create_table(
        'supplier_customizations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('supplier_id', sa.String(length=36), nullable=False),
        sa.Column('marketplace_id', sa.String(length=36), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['marketplace_id'], ['marketplaces.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('supplier_id', 'marketplace_id', name='uq_supplier_marketplace'),
    )

    # Settings
    op.create_table(
        'automation_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('auto_mode_enabled', sa.Boolean(), nullable=False),
        sa.Column('sync_interval_minutes', sa.Integer(), nullable=False),
        sa.Column('sync_period', sa.String(length=32), nullable=False),
        sa.Column('max_requests_per_day', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'storage_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('storage_type', sa.String(length=32), nullable=False),
        sa.Column('storage_login', sa.String(length=255), nullable=True),
        sa.Column('storage_password', sa.String(length=512), nullable=True),
        sa.Column('file_format', sa.String(length=8), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'sandbox_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('is_sandbox_mode', sa.Boolean(), nullable=False),
        sa.Column('test_supplier_id', sa.String(length=36), nullable=True),
        sa.Column('test_marketplace_id', sa.String(length=36), nullable=True),
        sa.Column('max_test_requests', sa.Integer(), nullable=False),
        sa.Column('test_requests_used', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['test_supplier_id'], ['suppliers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['test_marketplace_id'], ['marketplaces.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    # Finished runs
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('trigger', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('total_steps', sa.Integer(), nullable=False),
        sa.Column('completed_steps', sa.Integer(), nullable=False),
        sa.Column('error_count', sa.Integer(), nullable=False),
        sa.Column('progress_percent', sa.Float(), nullable=False),
        sa.Column('steps', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_runs_run_id', 'sync_runs', ['run_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_sync_runs_run_id', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_table('sandbox_settings')
    op.drop_table('storage_settings')
    op.drop_table('automation_settings')
    op.drop_table('supplier_customizations')
    op.drop_index('ix_products_marketplace_article', table_name='products')
    op.drop_index('ix_products_marketplace_id', table_name='products')
    op.drop_index('ix_products_supplier_id', table_name='products')
    op.drop_table('products')
    op.drop_table('marketplaces')
    op.drop_table('suppliers')
