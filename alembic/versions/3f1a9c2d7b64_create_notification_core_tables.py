"""create notification core tables

- users and study_sessions read by the achievement evaluator.
- device_tokens, user_notification_preferences.
- notifications with their delivery logs.
- achievements and user_achievements.

Revision ID: 3f1a9c2d7b64
Revises:
Create Date: 2026-03-02 09:14:27.401218

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2d7b64"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOTIFICATION_TYPES = (
    "study_reminder",
    "achievement_unlock",
    "duel_invitation",
    "duel_result",
    "friend_request",
    "friend_activity",
    "content_update",
    "streak_reminder",
    "plan_reminder",
    "coaching_note",
    "motivational_message",
    "system_announcement",
)
ENUM_TYPES = {
    "device_platform": ("ios", "android", "web"),
    "notification_type": NOTIFICATION_TYPES,
    "notification_status": ("pending", "sent", "delivered", "read", "failed"),
    "delivery_channel": ("push", "email", "in_app"),
}


def _enum(name):
    # notification_type is shared by two tables; on PostgreSQL the types are created up front.
    if op.get_bind().dialect.name == "postgresql":
        return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)
    return sa.Enum(*ENUM_TYPES[name], name=name)


def _created_at(name="created_at"):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUM_TYPES.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_duels", sa.Integer(), nullable=False),
        sa.Column("duels_won", sa.Integer(), nullable=False),
        sa.Column("duels_lost", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "study_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("study_date", sa.Date(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_index("idx_study_sessions_user_date", "study_sessions", ["user_id", "study_date"])

    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.String(length=512), nullable=False),
        sa.Column("platform", _enum("device_platform"), nullable=False),
        sa.Column("device_id", sa.String(), nullable=True),
        sa.Column("device_model", sa.String(), nullable=True),
        sa.Column("app_version", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at("registered_at"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disabled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disabled_reason", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "token", name="uq_device_tokens_user_token"),
    )
    op.create_index("idx_device_tokens_user_active", "device_tokens", ["user_id", "is_active"])
    op.create_index("idx_device_tokens_last_used", "device_tokens", ["last_used_at"])

    op.create_table(
        "user_notification_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notification_type", _enum("notification_type"), nullable=False),
        sa.Column("in_app_enabled", sa.Boolean(), nullable=False),
        sa.Column("push_enabled", sa.Boolean(), nullable=False),
        sa.Column("email_enabled", sa.Boolean(), nullable=False),
        sa.Column("frequency_hours", sa.Integer(), nullable=False),
        sa.Column("quiet_hours_start", sa.Time(), nullable=True),
        sa.Column("quiet_hours_end", sa.Time(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "notification_type", name="uq_preferences_user_type"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notification_type", _enum("notification_type"), nullable=False),
        sa.Column("template_name", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("action_url", sa.String(), nullable=True),
        sa.Column("icon_name", sa.String(), nullable=True),
        sa.Column("status", _enum("notification_status"), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.String(), nullable=True),
        _created_at(),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_notifications_status_created", "notifications", ["status", "created_at"])
    op.create_index(
        "idx_notifications_user_type_sent",
        "notifications",
        ["user_id", "notification_type", "sent_at"],
    )
    op.create_table(
        "notification_delivery_logs",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "notification_id",
            sa.Integer(),
            sa.ForeignKey("notifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("channel", _enum("delivery_channel"), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        _created_at("attempted_at"),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("requirements", sa.JSON(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("icon_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "achievement_id",
            sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at("earned_at"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_pair"),
    )


def downgrade() -> None:
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("notification_delivery_logs")
    op.drop_index("idx_notifications_user_type_sent", table_name="notifications")
    op.drop_index("idx_notifications_status_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("user_notification_preferences")
    op.drop_index("idx_device_tokens_last_used", table_name="device_tokens")
    op.drop_index("idx_device_tokens_user_active", table_name="device_tokens")
    op.drop_table("device_tokens")
    op.drop_index("idx_study_sessions_user_date", table_name="study_sessions")
    op.drop_table("study_sessions")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in ENUM_TYPES:
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
