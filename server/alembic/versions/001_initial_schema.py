"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "carousels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("mode", sa.String(20), nullable=False, server_default="editorial"),
        sa.Column("topic", sa.Text, nullable=False, server_default=""),
        sa.Column("objective", sa.String(100), nullable=False, server_default=""),
        sa.Column("emotion", sa.String(100), nullable=False, server_default=""),
        sa.Column("slides", sa.JSON, nullable=False),
        sa.Column("brand_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_carousels_brand", "carousels", ["brand_id"])
    op.create_index("idx_carousels_updated", "carousels", ["updated_at"])

    # Named style snapshots, reusable across carousels of a brand
    op.create_table(
        "style_presets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("style", sa.JSON, nullable=False),
        sa.Column("brand_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_style_presets_brand", "style_presets", ["brand_id"])


def downgrade() -> None:
    op.drop_table("style_presets")
    op.drop_table("carousels")
