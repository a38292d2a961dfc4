"""Initial deals schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create deals and processed_messages tables."""

    op.create_table(
        "deals",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("original_price", sa.Integer(), nullable=True),
        sa.Column("discount_percentage", sa.Integer(), nullable=True),
        sa.Column("merchant", sa.String(length=100), nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("is_expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    # Candidate window: merchant equality + created_at range, newest first
    op.create_index(
        "idx_deals_merchant_created_at", "deals", ["merchant", sa.text("created_at DESC")]
    )
    # Backstop for concurrent check-then-insert; NULL urls never collide
    op.create_index("idx_deals_merchant_url", "deals", ["merchant", "url"], unique=True)

    op.create_table(
        "processed_messages",
        sa.Column("message_id", sa.String(length=200), nullable=False),
        sa.Column("channel", sa.String(length=100), nullable=False),
        sa.Column("deal_id", sa.String(length=36), nullable=True),
        sa.Column("skipped_reason", sa.String(length=30), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("message_id"),
    )
    op.create_index(
        "idx_processed_messages_channel", "processed_messages", ["channel", "posted_at"]
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_processed_messages_channel", table_name="processed_messages")
    op.drop_table("processed_messages")
    op.drop_index("idx_deals_merchant_url", table_name="deals")
    op.drop_index("idx_deals_merchant_created_at", table_name="deals")
    op.drop_table("deals")
