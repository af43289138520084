"""Per-user documents owned by other services: profile, settings, documents index."""
from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import ValidationError as SchemaError

from autoapply.errors import NotFoundError, ValidationError
from autoapply.log import get_logger
from autoapply.schemas import Profile, UserSettings
from autoapply.store import JsonStore, user_key

log = get_logger(__name__)


def load_profile(store: JsonStore, user_id: str) -> Profile:
    data = store.get_json(user_key(user_id, "profile.json"))
    if not data:
        raise NotFoundError(f"User profile not found for {user_id}")
    try:
        profile = Profile.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(f"Invalid profile for {user_id}: {exc}") from exc
    if not profile.id:
        profile.id = user_id
    return profile


def load_user_settings(store: JsonStore, user_id: str) -> Optional[UserSettings]:
    data = store.get_json(user_key(user_id, "settings.json"))
    if not data:
        return None
    try:
        return UserSettings.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(f"Invalid settings for {user_id}: {exc}") from exc


def update_user_settings(
    store: JsonStore, user_id: str, mutate: Callable[[UserSettings], None],
) -> UserSettings:
    """Validate, mutate and write back settings under the store's update lock."""
    result: dict[str, UserSettings] = {}

    def _apply(current: Optional[dict[str, Any]]) -> dict[str, Any]:
        settings = UserSettings.model_validate(current or {"userId": user_id})
        mutate(settings)
        result["settings"] = settings
        # Keep keys written by other services
        return {**(current or {}), **settings.model_dump(mode="json", by_alias=True)}

    store.update_json(user_key(user_id, "settings.json"), _apply)
    return result["settings"]


def list_documents(store: JsonStore, user_id: str) -> list[dict[str, Any]]:
    index = store.get_json(user_key(user_id, "documents", "index.json")) or {}
    docs = index.get("documents", []) if isinstance(index, dict) else []
    return [d for d in docs if isinstance(d, dict)]
