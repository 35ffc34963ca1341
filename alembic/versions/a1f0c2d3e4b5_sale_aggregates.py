"""Create contract_metadata, volume_aggregates and comments.

volume_aggregates.version is the compare-and-swap key for history writes.

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1f0c2d3e4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "contract_metadata",
        sa.Column("address", sa.String(42), primary_key=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=True),
        sa.Column("is_launched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("best_comment", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "volume_aggregates",
        sa.Column("address", sa.String(42), primary_key=True),
        sa.Column("current_volume", sa.Float(), nullable=False, server_default="0"),
        sa.Column("history", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # Comments are written by the web app; created here so fresh installs have it
    op.create_table(
        "comments",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "idx_comments_contract_lower_created",
        "comments",
        [sa.text("lower(contract_address)"), "created_at_ms"],
    )


def downgrade() -> None:
    op.drop_index("idx_comments_contract_lower_created", table_name="comments")
    op.drop_table("comments")
    op.drop_table("volume_aggregates")
    op.drop_table("contract_metadata")
