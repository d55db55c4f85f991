"""add notification scan and claim columns

- last_evaluated_at: deferred intents rotate to the back of the pending scan.
- claim_id / claimed_at: a pass claims an intent before delivering it.

Revision ID: 8b52e0d4a913
Revises: 3f1a9c2d7b64
Create Date: 2026-03-09 10:41:03.118522

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8b52e0d4a913"
down_revision: Union[str, None] = "3f1a9c2d7b64"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("notifications", sa.Column("last_evaluated_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("notifications", sa.Column("claim_id", sa.String(length=32), nullable=True))
    op.add_column("notifications", sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True))
    op.create_index(
        "idx_notifications_status_evaluated",
        "notifications",
        ["status", "last_evaluated_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_notifications_status_evaluated", table_name="notifications")
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.drop_column("claimed_at")
        batch_op.drop_column("claim_id")
        batch_op.drop_column("last_evaluated_at")
