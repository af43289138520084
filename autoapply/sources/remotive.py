"""Remotive: free API for remote tech jobs (no API key required).

Docs: https://remotive.com/api/remote-jobs
"""
from __future__ import annotations

import requests

from autoapply.errors import SourceFetchError
from autoapply.log import get_logger
from autoapply.models import RawJob, parse_datetime
from autoapply.retry import retry
from autoapply.schemas import SearchQuery
from autoapply.sources.base import JobSource, TTLCache

log = get_logger(__name__)

API_URL = "https://remotive.com/api/remote-jobs"
CACHE_TTL = 5 * 60
PAGE_LIMIT = 100

# Remotive works best with short, broad search terms, not full role titles.
_GENERIC_WORDS = {
    "senior", "junior", "lead", "staff", "principal", "manager",
    "engineer", "specialist", "consultant", "ii", "iii", "iv",
}


def _search_terms(keywords: list[str]) -> list[str]:
    terms: list[str] = []
    for kw in keywords[:3]:
        distinctive = [w for w in kw.lower().split() if w not in _GENERIC_WORDS]
        term = distinctive[0] if distinctive else kw.lower().strip()
        if term and term not in terms:
            terms.append(term)
    return terms or [""]


def _to_raw_job(hit: dict) -> RawJob:
    posted = None
    if hit.get("publication_date"):
        try:
            posted = parse_datetime(hit["publication_date"])
        except ValueError:
            log.debug("Remotive: unparseable date %r", hit["publication_date"])
    return RawJob(
        external_id=str(hit["id"]),
        platform="remotive",
        title=hit.get("title", ""),
        company=hit.get("company_name", ""),
        location=hit.get("candidate_required_location") or "Remote",
        remote=True,
        description=hit.get("description") or "",
        url=hit.get("url") or None,
        tags=hit.get("tags") or [],
        job_type=hit.get("job_type") or None,
        posted_at=posted,
    )


class RemotiveSource(JobSource):
    name = "remotive"

    def __init__(self, session: requests.Session | None = None, cache: TTLCache | None = None) -> None:
        self.session = session or requests.Session()
        self.cache = cache or TTLCache(CACHE_TTL)

    @retry(max_attempts=2, base_delay=1.5, retryable=(requests.RequestException, OSError))
    def _fetch(self, search: str) -> list[dict]:
        params: dict = {"limit": PAGE_LIMIT}
        if search:
            params["search"] = search
        r = self.session.get(API_URL, params=params, timeout=15)
        r.raise_for_status()
        return r.json().get("jobs", [])

    def _postings(self, term: str) -> list[RawJob]:
        cached = self.cache.get(term)
        if cached is not None:
            log.debug("Remotive search=%r using cached postings (%d)", term, len(cached))
            return cached
        hits = self._fetch(term)
        postings = [_to_raw_job(hit) for hit in hits if "id" in hit]
        self.cache.put(term, postings)
        log.debug("Remotive search=%r returned %d jobs", term, len(postings))
        return postings

    def search(self, query: SearchQuery) -> list[RawJob]:
        jobs: list[RawJob] = []
        seen: set[str] = set()
        errors: list[str] = []
        terms = _search_terms(query.keywords)
        for term in terms:
            try:
                postings = self._postings(term)
            except (requests.RequestException, OSError, ValueError) as exc:
                log.warning("Remotive search=%r error: %s", term, exc)
                errors.append(str(exc))
                continue
            for job in postings:
                if job.external_id in seen:
                    continue
                seen.add(job.external_id)
                jobs.append(job)

        if errors and len(errors) == len(terms):
            raise SourceFetchError(self.name, errors[-1])

        # The cache holds raw postings; the query filter runs on every call
        return self.filter(jobs, query)

    def is_available(self) -> bool:
        try:
            r = self.session.get(API_URL, params={"limit": 1}, timeout=10)
            return r.ok
        except requests.RequestException:
            return False
