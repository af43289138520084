from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable

from autoapply.models import RawJob
from autoapply.schemas import SearchQuery


class JobSource(ABC):
    name: str = "unknown"

    @abstractmethod
    def search(self, query: SearchQuery) -> list[RawJob]:
        """Fetch postings and return those passing ``matches_query``.

        Raises ``SourceFetchError`` when the upstream cannot be reached.
        """

    @abstractmethod
    def is_available(self) -> bool:
        pass

    def filter(self, jobs: list[RawJob], query: SearchQuery) -> list[RawJob]:
        return [j for j in jobs if self.matches_query(j, query)]

    @staticmethod
    def matches_query(job: RawJob, query: SearchQuery) -> bool:
        if query.keywords:
            text = f"{job.title} {job.description} {job.company}".lower()
            if not any(k.lower() in text for k in query.keywords):
                return False

        if query.remote is not None and job.remote != query.remote:
            return False

        # Location only constrains on-site roles that state one
        if query.location and not job.remote and job.location:
            if query.location.lower() not in job.location.lower():
                return False

        if query.min_salary and job.salary and job.salary.max and job.salary.max < query.min_salary:
            return False

        company = job.company.lower()
        if any(ex.lower() in company for ex in query.exclude_companies):
            return False

        return True


class TTLCache:
    """Small in-memory cache used by adapters that poll cheap public APIs."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl_seconds
        self._clock = clock
        self._data: dict[str, tuple[float, list[RawJob]]] = {}

    def get(self, key: str) -> list[RawJob] | None:
        hit = self._data.get(key)
        if hit is None:
            return None
        stamp, jobs = hit
        if self._clock() - stamp >= self.ttl:
            del self._data[key]
            return None
        return list(jobs)

    def put(self, key: str, jobs: list[RawJob]) -> None:
        self._data[key] = (self._clock(), list(jobs))
