"""Data models for jobs and applications as they move through the pipeline."""
from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel

from autoapply.errors import ValidationError
from autoapply.schemas import MatchAnalysis

PIPELINE_STATUSES: tuple[str, ...] = (
    "discovered", "saved", "applying", "applied",
    "screening", "interview", "offer", "rejected",
)
APPLICATION_METHODS: tuple[str, ...] = ("email", "direct_website", "manual_required")
APPLICATION_STATUSES: tuple[str, ...] = ("submitted", "failed")

_DATETIME_FIELDS = frozenset({"posted_at", "fetched_at", "saved_at", "updated_at", "applied_at"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO strings (``Z`` suffix included) and epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def make_job_id(platform: str, external_id: str) -> str:
    return re.sub(r"[^a-z0-9-]", "-", f"{platform}-{external_id}".lower())


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _encode(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


class Record:
    """JSON round-tripping shared by the dataclasses below."""

    def to_dict(self) -> dict[str, Any]:
        return _encode(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in _DATETIME_FIELDS:
                value = parse_datetime(value)
                if value is None and key not in ("posted_at", "applied_at"):
                    continue
            kwargs[key] = value
        return cls(**kwargs)


@dataclass
class Salary(Record):
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


@dataclass
class RawJob(Record):
    external_id: str
    platform: str
    title: str
    company: str
    location: str = ""
    remote: bool = False
    description: str = ""
    url: Optional[str] = None
    salary: Optional[Salary] = None
    tags: list[str] = field(default_factory=list)
    job_type: Optional[str] = None
    posted_at: Optional[datetime] = None
    fetched_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.external_id or not self.platform:
            raise ValidationError("external_id and platform are required")
        self.external_id = str(self.external_id)
        self.location = self.location or ""
        self.description = self.description or ""
        self.tags = list(self.tags or [])
        if isinstance(self.salary, dict):
            self.salary = Salary(**{k: self.salary.get(k) for k in ("min", "max", "currency")})
        if self.salary is not None and self.salary.min is None and self.salary.max is None:
            self.salary = None


@dataclass
class ScoredJob(RawJob):
    job_id: str = ""
    match_score: int = 50
    analysis: Optional[MatchAnalysis] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.job_id:
            self.job_id = make_job_id(self.platform, self.external_id)
        if isinstance(self.analysis, dict):
            self.analysis = MatchAnalysis.model_validate(self.analysis)
        if not isinstance(self.match_score, int) or not 0 <= self.match_score <= 100:
            raise ValidationError(f"match_score must be an int in [0, 100], got {self.match_score!r}")

    @classmethod
    def from_raw(cls, job: RawJob, match_score: int, analysis: MatchAnalysis | None = None) -> "ScoredJob":
        base = {f.name: getattr(job, f.name) for f in fields(RawJob)}
        return cls(**base, match_score=match_score, analysis=analysis)


def check_status(status: str) -> None:
    if status not in PIPELINE_STATUSES:
        raise ValidationError(f"Unknown pipeline status {status!r}")


@dataclass
class JobSummary(Record):
    """Index row: a cached projection of the per-job detail file."""

    id: str
    external_id: str
    platform: str
    title: str
    company: str
    location: str = ""
    remote: bool = False
    match_score: int = 50
    status: str = "discovered"
    saved_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    applied_at: Optional[datetime] = None
    url: Optional[str] = None

    def __post_init__(self) -> None:
        check_status(self.status)


@dataclass
class Job(ScoredJob):
    status: str = "discovered"
    saved_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    applied_at: Optional[datetime] = None
    application_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        check_status(self.status)

    @property
    def id(self) -> str:
        return self.job_id

    def summary(self) -> JobSummary:
        return JobSummary(
            id=self.job_id,
            external_id=self.external_id,
            platform=self.platform,
            title=self.title,
            company=self.company,
            location=self.location,
            remote=self.remote,
            match_score=self.match_score,
            status=self.status,
            saved_at=self.saved_at,
            updated_at=self.updated_at,
            applied_at=self.applied_at,
            url=self.url,
        )


@dataclass
class PlatformResult(Record):
    platform: str
    count: int = 0
    error: Optional[str] = None


@dataclass
class SearchResult(Record):
    total_results: int
    new_jobs: int
    platform_results: list[PlatformResult]
    jobs: list[ScoredJob]
    searched_at: datetime = field(default_factory=utcnow)


@dataclass
class ApplicationResult(Record):
    success: bool
    method: str
    application_id: str = ""
    error: Optional[str] = None
    screenshot_key: Optional[str] = None
    confirmation_message: Optional[str] = None
    fields_filled: int = 0
    total_fields: int = 0

    def __post_init__(self) -> None:
        if self.method not in APPLICATION_METHODS:
            raise ValidationError(f"Unknown application method {self.method!r}")


@dataclass
class Application(Record):
    id: str
    job_id: str
    user_id: str
    status: str
    method: str
    applied_at: Optional[datetime] = None
    cv_document_id: Optional[str] = None
    cover_letter_document_id: Optional[str] = None
    error: Optional[str] = None
    screenshot_key: Optional[str] = None
    confirmation_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.status not in APPLICATION_STATUSES:
            raise ValidationError(f"Unknown application status {self.status!r}")
        if self.method not in APPLICATION_METHODS:
            raise ValidationError(f"Unknown application method {self.method!r}")

    def index_entry(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "status": self.status,
            "method": self.method,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
        }


@dataclass
class FieldOutcome:
    selector: str
    kind: str
    ok: bool
    error: Optional[str] = None


@dataclass
class FillReport:
    """Per-field outcome of a best-effort form fill."""

    outcomes: list[FieldOutcome] = field(default_factory=list)

    def record(self, selector: str, kind: str, error: str | None = None) -> None:
        self.outcomes.append(FieldOutcome(selector, kind, ok=error is None, error=error))

    @property
    def filled(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> list[FieldOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def total(self) -> int:
        return len(self.outcomes)
