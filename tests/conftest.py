from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from autoapply.llm import LLMClient
from autoapply.models import RawJob
from autoapply.notifications import Notifier
from autoapply.store import LocalStore, user_key


class FakeChat:
    """Stands in for ``OpenAI().chat.completions``; replies are strings or exceptions."""

    def __init__(self, replies: list | Callable[[dict], Any]) -> None:
        self._replies = replies
        self.calls: list[dict] = []

    @property
    def chat(self) -> "FakeChat":
        return self

    @property
    def completions(self) -> "FakeChat":
        return self

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if callable(self._replies):
            reply = self._replies(kwargs)
        else:
            reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))],
            usage=None,
        )


def fake_llm(replies: list | Callable[[dict], Any]) -> LLMClient:
    return LLMClient("test-key", client=FakeChat(replies))


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, Any]] = []

    def send(self, user_id: str, notification: Any) -> None:
        self.sent.append((user_id, notification))


def make_job(external_id: str = "1", **overrides: Any) -> RawJob:
    fields = {
        "external_id": external_id,
        "platform": "remoteok",
        "title": "Backend Engineer",
        "company": "Acme",
        "location": "Remote",
        "remote": True,
        "description": "Python services on AWS",
        "url": f"https://boards.greenhouse.io/acme/jobs/{external_id}",
    }
    fields.update(overrides)
    return RawJob(**fields)


PROFILE_DOC: dict[str, Any] = {
    "id": "u1",
    "email": "ada@example.com",
    "name": "Ada Lovelace",
    "phone": "+1 555 0100",
    "location": "London",
    "headline": "Backend Engineer",
    "summary": "Backend engineer focused on data pipelines.",
    "skills": [
        {"name": "Python"},
        {"name": "AWS"},
        {"name": "Postgres"},
        {"name": "Rust"},
        {"name": "Kafka"},
    ],
    "experience": [
        {
            "company": "Analytical Engines",
            "role": "Senior Engineer",
            "startDate": "2018-01",
            "endDate": "2022-01",
        },
    ],
    "socialLinks": [{"platform": "linkedin", "url": "https://linkedin.com/in/ada"}],
    "preferences": {"remotePreference": "remote"},
}


@pytest.fixture
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "store")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def seed_user(
    store: LocalStore,
    user_id: str = "u1",
    *,
    profile: dict | None = None,
    settings: dict | None = None,
) -> None:
    store.put_json(user_key(user_id, "profile.json"), {**PROFILE_DOC, **(profile or {}), "id": user_id})
    if settings is not None:
        store.put_json(user_key(user_id, "settings.json"), settings)


def match_reply(score: float) -> str:
    return json.dumps({
        "matchScore": score,
        "strengths": ["Python"],
        "concerns": [],
        "missingSkills": [],
        "recommendations": ["Apply"],
    })
