"""add visibility level to audit_events

Revision ID: 202610080001
Revises: 202610010001
Create Date: 2026-10-08 09:12:44
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "202610080001"
down_revision: Union[str, None] = "202610010001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _column_exists(bind: sa.engine.Connection, table_name: str, column_name: str) -> bool:
    return column_name in {column["name"] for column in sa.inspect(bind).get_columns(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    if _column_exists(bind, "audit_events", "level"):
        return

    # Existing rows become the broadest tier.
    with op.batch_alter_table("audit_events") as batch_op:
        batch_op.add_column(
            sa.Column("level", sa.SmallInteger(), nullable=False, server_default=sa.text("0"))
        )
        batch_op.create_check_constraint("chk_audit_level", "level >= 0")


def downgrade() -> None:
    with op.batch_alter_table("audit_events") as batch_op:
        batch_op.drop_constraint("chk_audit_level", type_="check")
        batch_op.drop_column("level")
