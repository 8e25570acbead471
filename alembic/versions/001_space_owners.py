"""Space ownership mapping table.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "noco_space_owners",
        sa.Column("user_id", sa.String(255), primary_key=True),
        sa.Column("space_id", sa.String(255), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_noco_space_owners_space_id", "noco_space_owners", ["space_id"])


def downgrade() -> None:
    op.drop_index("ix_noco_space_owners_space_id", table_name="noco_space_owners")
    op.drop_table("noco_space_owners")
