"""Notification templates and variable resolution.

Templates use ``{name}`` placeholders in the title, body and action URL. A
placeholder without a matching variable is a caller error (`TemplateError`),
never a silently blank field.
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Formatter
from typing import Any, Dict, Iterable, Mapping, Optional

from notification_core.core.exceptions import ValidationError, TemplateError
from notification_core.models.enums import NotificationType

_formatter = Formatter()


def _placeholders(text: Optional[str]) -> Iterable[str]:
    if not text:
        return []
    return [field for _, field, _, _ in _formatter.parse(text) if field]


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    body: str
    action_url: Optional[str] = None
    icon_name: Optional[str] = None


@dataclass(frozen=True)
class NotificationTemplate:
    name: str
    notification_type: NotificationType
    title: str
    body: str
    action_url: Optional[str] = None
    icon_name: Optional[str] = None

    def render(self, variables: Mapping[str, Any]) -> RenderedNotification:
        values = dict(variables or {})
        for part in (self.title, self.body, self.action_url):
            for field in _placeholders(part):
                if field.split(".")[0].split("[")[0] not in values:
                    raise TemplateError(self.name, field)
        return RenderedNotification(
            title=self.title.format_map(values),
            body=self.body.format_map(values),
            action_url=self.action_url.format_map(values) if self.action_url else None,
            icon_name=self.icon_name,
        )


DEFAULT_TEMPLATES = (
    NotificationTemplate(
        "daily_study_reminder",
        NotificationType.STUDY_REMINDER,
        "{reminder_title}",
        "Your study goal for today is waiting. A short session keeps you on track.",
        "/study",
        "book",
    ),
    NotificationTemplate(
        "new_motivational_message",
        NotificationType.MOTIVATIONAL_MESSAGE,
        "{message_title}",
        "{message_content}",
        None,
        "sparkles",
    ),
    NotificationTemplate(
        "new_coaching_note",
        NotificationType.COACHING_NOTE,
        "{note_title}",
        "Your coaching note for week {week_number} is ready.",
        "/coaching/{note_id}",
        "lightbulb",
    ),
    NotificationTemplate(
        "study_plan_reminder",
        NotificationType.PLAN_REMINDER,
        "{activity_title}",
        "You have planned activities today. Open your study plan to continue.",
        "/study-plan",
        "calendar",
    ),
    NotificationTemplate(
        "streak_warning",
        NotificationType.STREAK_REMINDER,
        "Keep your {streak_type} streak alive",
        "Study today so your streak does not reset.",
        "/study",
        "flame",
    ),
    NotificationTemplate(
        "achievement_unlocked",
        NotificationType.ACHIEVEMENT_UNLOCK,
        "Achievement unlocked: {achievement_name}",
        "{achievement_description}",
        "/achievements/{achievement_id}",
        "trophy",
    ),
    NotificationTemplate(
        "system_announcement",
        NotificationType.SYSTEM_ANNOUNCEMENT,
        "{announcement_title}",
        "{announcement_content}",
        None,
        "megaphone",
    ),
    NotificationTemplate(
        "duel_invitation",
        NotificationType.DUEL_INVITATION,
        "{opponent_name} challenged you",
        "Accept the duel before it expires.",
        "/duels/{duel_id}",
        "swords",
    ),
    NotificationTemplate(
        "duel_result",
        NotificationType.DUEL_RESULT,
        "Duel finished",
        "{result_summary}",
        "/duels/{duel_id}",
        "swords",
    ),
    NotificationTemplate(
        "friend_request",
        NotificationType.FRIEND_REQUEST,
        "New friend request",
        "{requester_name} wants to study with you.",
        "/friends",
        "users",
    ),
    NotificationTemplate(
        "friend_activity",
        NotificationType.FRIEND_ACTIVITY,
        "{friend_name} is studying",
        "{activity_summary}",
        "/friends",
        "users",
    ),
    NotificationTemplate(
        "content_update",
        NotificationType.CONTENT_UPDATE,
        "New content: {content_title}",
        "{content_summary}",
        "/courses/{course_id}",
        "book-open",
    ),
)


class TemplateRegistry:
    """Name → template lookup seeded with the default catalog."""

    def __init__(self, templates: Iterable[NotificationTemplate] = DEFAULT_TEMPLATES):
        self._templates: Dict[str, NotificationTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: NotificationTemplate) -> None:
        self._templates[template.name] = template

    def get(self, name: str) -> NotificationTemplate:
        try:
            return self._templates[name]
        except KeyError as exc:
            raise ValidationError(
                f"Unknown notification template '{name}'", field="template_name"
            ) from exc

    def names(self) -> list:
        return sorted(self._templates)


default_registry = TemplateRegistry()

__all__ = [
    "DEFAULT_TEMPLATES",
    "NotificationTemplate",
    "RenderedNotification",
    "TemplateRegistry",
    "default_registry",
]
