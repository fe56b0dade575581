"""create parse pipeline tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-18 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('documents',
    sa.Column('document_id', sa.UUID(), nullable=False),
    sa.Column('file_name', sa.String(), nullable=False),
    sa.Column('file_hash', sa.String(), nullable=False),
    sa.Column('storage_key', sa.String(), nullable=False),
    sa.Column('upload_group_id', sa.UUID(), nullable=True),
    sa.Column('page_number', sa.Integer(), nullable=True),
    sa.Column('page_total', sa.Integer(), nullable=True),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('vendor_name', sa.String(), nullable=True),
    sa.Column('invoice_date', sa.Date(), nullable=True),
    sa.Column('parse_error_summary', sa.Text(), nullable=True),
    sa.Column('is_deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('uploaded_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('document_id')
    )
    op.create_table('product_master',
    sa.Column('product_id', sa.UUID(), nullable=False),
    sa.Column('product_key', sa.Text(), nullable=False),
    sa.Column('product_name', sa.Text(), nullable=False),
    sa.Column('spec', sa.Text(), nullable=True),
    sa.Column('category', sa.String(), nullable=True),
    sa.Column('default_unit_price', sa.Numeric(precision=12, scale=2), nullable=True),
    sa.Column('quality_flag', sa.String(), nullable=False),
    sa.Column('last_updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('last_source_type', sa.String(), nullable=True),
    sa.Column('last_source_id', sa.String(), nullable=True),
    sa.PrimaryKeyConstraint('product_id'),
    sa.UniqueConstraint('product_key')
    )
    op.create_table('update_history',
    sa.Column('history_id', sa.UUID(), nullable=False),
    sa.Column('update_key', sa.Text(), nullable=False),
    sa.Column('product_id', sa.UUID(), nullable=False),
    sa.Column('field_name', sa.String(), nullable=False),
    sa.Column('vendor_name', sa.String(), nullable=True),
    sa.Column('before_value', sa.Text(), nullable=True),
    sa.Column('after_value', sa.Text(), nullable=True),
    sa.Column('source_type', sa.String(), nullable=False),
    sa.Column('source_id', sa.String(), nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_by', sa.String(), nullable=True),
    sa.PrimaryKeyConstraint('history_id'),
    sa.UniqueConstraint('update_key')
    )
    op.create_table('document_parse_runs',
    sa.Column('parse_run_id', sa.UUID(), nullable=False),
    sa.Column('document_id', sa.UUID(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('model', sa.String(), nullable=False),
    sa.Column('prompt_version', sa.String(), nullable=False),
    sa.Column('stats', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('error_detail', sa.Text(), nullable=True),
    sa.Column('started_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('finished_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['document_id'], ['documents.document_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('parse_run_id')
    )
    op.create_table('document_page_assets',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('document_id', sa.UUID(), nullable=False),
    sa.Column('page_no', sa.Integer(), nullable=False),
    sa.Column('storage_key', sa.String(length=1024), nullable=False),
    sa.Column('page_hash', sa.String(length=64), nullable=False),
    sa.Column('byte_size', sa.Integer(), nullable=False),
    sa.Column('mime_type', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['document_id'], ['documents.document_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('document_id', 'page_no', name='uq_document_page_asset')
    )
    op.create_table('vendor_prices',
    sa.Column('vendor_price_id', sa.UUID(), nullable=False),
    sa.Column('product_id', sa.UUID(), nullable=False),
    sa.Column('vendor_name', sa.String(), nullable=False),
    sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('price_updated_on', sa.Date(), nullable=True),
    sa.Column('source_type', sa.String(), nullable=False),
    sa.Column('source_id', sa.String(), nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['product_id'], ['product_master.product_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('vendor_price_id'),
    sa.UniqueConstraint('product_id', 'vendor_name', name='uq_vendor_price_product_vendor')
    )
    op.create_table('document_parse_pages',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('parse_run_id', sa.UUID(), nullable=False),
    sa.Column('page_no', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('parsed_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('error_summary', sa.String(length=500), nullable=True),
    sa.Column('step_id', sa.String(length=255), nullable=True),
    sa.Column('attempt', sa.Integer(), nullable=True),
    sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('finished_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['parse_run_id'], ['document_parse_runs.parse_run_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('parse_run_id', 'page_no', name='uq_parse_page_run_page')
    )
    op.create_table('document_line_items',
    sa.Column('line_item_id', sa.UUID(), nullable=False),
    sa.Column('parse_run_id', sa.UUID(), nullable=False),
    sa.Column('line_no', sa.Integer(), nullable=False),
    sa.Column('product_name_raw', sa.Text(), nullable=True),
    sa.Column('spec_raw', sa.Text(), nullable=True),
    sa.Column('product_key_candidate', sa.Text(), nullable=True),
    sa.Column('category', sa.String(), nullable=True),
    sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=True),
    sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=True),
    sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
    sa.Column('model_confidence', sa.Numeric(precision=4, scale=3), nullable=True),
    sa.Column('system_confidence', sa.Numeric(precision=4, scale=3), nullable=True),
    sa.Column('matched_product_id', sa.UUID(), nullable=True),
    sa.ForeignKeyConstraint(['parse_run_id'], ['document_parse_runs.parse_run_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('line_item_id')
    )
    op.create_table('document_diff_items',
    sa.Column('diff_item_id', sa.UUID(), nullable=False),
    sa.Column('parse_run_id', sa.UUID(), nullable=False),
    sa.Column('line_item_id', sa.UUID(), nullable=False),
    sa.Column('classification', sa.String(), nullable=False),
    sa.Column('reason', sa.String(), nullable=True),
    sa.Column('vendor_name', sa.String(), nullable=True),
    sa.Column('invoice_date', sa.Date(), nullable=True),
    sa.Column('before', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('after', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.ForeignKeyConstraint(['line_item_id'], ['document_line_items.line_item_id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['parse_run_id'], ['document_parse_runs.parse_run_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('diff_item_id')
    )
    op.create_index('ix_document_parse_runs_document_id', 'document_parse_runs', ['document_id'], unique=False)
    op.create_index('ix_document_line_items_parse_run_id', 'document_line_items', ['parse_run_id'], unique=False)
    op.create_index('ix_document_diff_items_parse_run_id', 'document_diff_items', ['parse_run_id'], unique=False)
    op.create_index('ix_update_history_source', 'update_history', ['source_type', 'source_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_update_history_source', table_name='update_history')
    op.drop_index('ix_document_diff_items_parse_run_id', table_name='document_diff_items')
    op.drop_index('ix_document_line_items_parse_run_id', table_name='document_line_items')
    op.drop_index('ix_document_parse_runs_document_id', table_name='document_parse_runs')
    op.drop_table('document_diff_items')
    op.drop_table('document_line_items')
    op.drop_table('document_parse_pages')
    op.drop_table('vendor_prices')
    op.drop_table('document_page_assets')
    op.drop_table('document_parse_runs')
    op.drop_table('update_history')
    op.drop_table('product_master')
    op.drop_table('documents')
