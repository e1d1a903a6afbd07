"""create_catalog_sync_tables

Revision ID: 4b7e2d9a1c30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "4b7e2d9a1c30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "catalogs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("merchant_id", sa.Text(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ad_platform", sa.String(length=40), nullable=False),
        sa.Column("feed_format", sa.String(length=40), nullable=False),
        sa.Column("feed_custom_file_name", sa.String(length=255), nullable=True),
        sa.Column("oos_handling", sa.String(length=40), nullable=False),
        sa.Column("oos_temporary_allowance_days", sa.Integer(), nullable=True),
        sa.Column("sync_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sync_schedule_cron", sa.Text(), nullable=True),
        sa.Column("next_scheduled_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_lease_owner", sa.Text(), nullable=True),
        sa.Column("sync_lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_catalogs_merchant_id", "catalogs", ["merchant_id"])

    op.create_table(
        "catalog_product_items",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("catalog_id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.Text(), nullable=False),
        sa.Column("custom_title", sa.String(length=255), nullable=True),
        sa.Column("custom_description", sa.Text(), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["catalog_id"], ["catalogs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("catalog_id", "product_id", name="uq_catalog_product_items_catalog_product"),
    )
    op.create_index("ix_catalog_product_items_product_id", "catalog_product_items", ["product_id"])

    op.create_table(
        "catalog_products",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("merchant_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("availability", sa.Text(), nullable=False, server_default="in_stock"),
        sa.Column("stock_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("product_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("brand", sa.Text(), nullable=True),
        sa.Column("gtin", sa.Text(), nullable=True),
        sa.Column("mpn", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("source_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "out_of_stock_since",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="품절이 처음 감지된 시점 (재입고 시 초기화)",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_catalog_products_merchant_id", "catalog_products", ["merchant_id"])

    op.create_table(
        "catalog_sync_history",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("catalog_id", sa.UUID(), nullable=False),
        sa.Column("ad_platform", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("trigger_type", sa.Text(), nullable=True),
        sa.Column("sync_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sync_ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["catalog_id"], ["catalogs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_catalog_sync_history_catalog_platform_started",
        "catalog_sync_history",
        ["catalog_id", "ad_platform", "sync_started_at"],
    )

    op.create_table(
        "catalog_sync_messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="queued"),
        sa.Column("group_key", sa.Text(), nullable=True),
        sa.Column("receive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visible_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_catalog_sync_messages_status_visible",
        "catalog_sync_messages",
        ["status", "visible_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_catalog_sync_messages_status_visible", table_name="catalog_sync_messages")
    op.drop_table("catalog_sync_messages")
    op.drop_index("ix_catalog_sync_history_catalog_platform_started", table_name="catalog_sync_history")
    op.drop_table("catalog_sync_history")
    op.drop_index("ix_catalog_products_merchant_id", table_name="catalog_products")
    op.drop_table("catalog_products")
    op.drop_index("ix_catalog_product_items_product_id", table_name="catalog_product_items")
    op.drop_table("catalog_product_items")
    op.drop_index("ix_catalogs_merchant_id", table_name="catalogs")
    op.drop_table("catalogs")
