"""Notification dispatch seen from the pipeline: fire-and-forget."""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from autoapply.log import get_logger
from autoapply.models import utcnow
from autoapply.store import JsonStore, user_key

log = get_logger(__name__)

PRIORITIES = ("critical", "high", "medium", "low")


@dataclass
class Notification:
    type: str
    title: str
    message: str
    priority: str = "medium"
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.priority not in PRIORITIES:
            self.priority = "medium"


class Notifier(ABC):
    @abstractmethod
    def send(self, user_id: str, notification: Notification) -> None:
        ...


class StoreNotifier(Notifier):
    """Appends to the user's in-app inbox; delivery channels read from there."""

    MAX_KEPT = 500

    def __init__(self, store: JsonStore) -> None:
        self.store = store

    def send(self, user_id: str, notification: Notification) -> None:
        entry = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "priority": notification.priority,
            "channel": "in_app",
            "read": False,
            "data": notification.data,
            "created_at": utcnow().isoformat(),
        }

        def _append(current):
            items = list((current or {}).get("notifications", []))
            items.append(entry)
            return {"notifications": items[-self.MAX_KEPT:]}

        self.store.update_json(user_key(user_id, "notifications", "index.json"), _append)
        log.debug("Queued %s notification for %s", notification.type, user_id)


def notify_safely(notifier: Notifier | None, user_id: str, notification: Notification) -> bool:
    """Send and swallow failures; a missed notification never fails the caller."""
    if notifier is None:
        return False
    try:
        notifier.send(user_id, notification)
        return True
    except Exception as exc:
        log.error("Notification %r for %s failed: %s", notification.type, user_id, exc)
        return False
