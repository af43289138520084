"""RemoteOK: public JSON feed of remote jobs (no API key required).

Docs: https://remoteok.com/api  (first element of the array is a legal notice)
"""
from __future__ import annotations

import requests

from autoapply.errors import SourceFetchError
from autoapply.log import get_logger
from autoapply.models import RawJob, Salary, parse_datetime
from autoapply.retry import retry
from autoapply.schemas import SearchQuery
from autoapply.sources.base import JobSource, TTLCache

log = get_logger(__name__)

API_URL = "https://remoteok.com/api"
USER_AGENT = "Autoapply/1.0 (Job Search Platform)"
CACHE_TTL = 5 * 60
FEED_CACHE_KEY = "feed"


def _to_raw_job(hit: dict) -> RawJob:
    sal_min = hit.get("salary_min") or None
    sal_max = hit.get("salary_max") or None
    posted = None
    if hit.get("date"):
        try:
            posted = parse_datetime(hit["date"])
        except ValueError:
            log.debug("RemoteOK: unparseable date %r", hit["date"])
    return RawJob(
        external_id=str(hit.get("id") or hit.get("slug")),
        platform="remoteok",
        title=hit.get("position", ""),
        company=hit.get("company", ""),
        location=hit.get("location") or "Remote",
        remote=True,
        description=hit.get("description") or "",
        url=hit.get("url") or None,
        salary=Salary(min=sal_min, max=sal_max, currency="USD") if (sal_min or sal_max) else None,
        tags=hit.get("tags") or [],
        posted_at=posted,
    )


class RemoteOKSource(JobSource):
    name = "remoteok"

    def __init__(self, session: requests.Session | None = None, cache: TTLCache | None = None) -> None:
        self.session = session or requests.Session()
        self.cache = cache or TTLCache(CACHE_TTL)

    @retry(max_attempts=2, base_delay=1.5, retryable=(requests.RequestException, OSError))
    def _fetch(self) -> list[dict]:
        r = self.session.get(API_URL, headers={"User-Agent": USER_AGENT}, timeout=20)
        r.raise_for_status()
        data = r.json()
        return data[1:] if isinstance(data, list) else []

    def _feed(self) -> list[RawJob]:
        """The whole feed; the endpoint takes no query, so one cache entry serves every search."""
        cached = self.cache.get(FEED_CACHE_KEY)
        if cached is not None:
            log.info("RemoteOK: using cached feed (%d)", len(cached))
            return cached

        try:
            hits = self._fetch()
        except (requests.RequestException, OSError, ValueError) as exc:
            raise SourceFetchError(self.name, str(exc)) from exc

        jobs = [_to_raw_job(hit) for hit in hits if hit.get("id") or hit.get("slug")]
        self.cache.put(FEED_CACHE_KEY, jobs)
        log.info("RemoteOK: fetched %d hits", len(hits))
        return jobs

    def search(self, query: SearchQuery) -> list[RawJob]:
        jobs = self.filter(self._feed(), query)
        log.info("RemoteOK: %d job(s) match query", len(jobs))
        return jobs

    def is_available(self) -> bool:
        try:
            r = self.session.get(API_URL, headers={"User-Agent": USER_AGENT}, timeout=10)
            return r.ok
        except requests.RequestException:
            return False
