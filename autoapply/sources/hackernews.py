"""HackerNews "Who is hiring": monthly thread, one posting per top-level comment.

Comments are free text, so each one goes through a fast AI extraction call.
The parsed thread is cached in the store for six hours.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Optional

import requests

from autoapply.errors import ExternalServiceError, SourceFetchError
from autoapply.llm import LLMClient
from autoapply.log import get_logger
from autoapply.models import RawJob, parse_datetime, utcnow
from autoapply.retry import retry
from autoapply.schemas import ExtractedJob, SearchQuery
from autoapply.sources.base import JobSource
from autoapply.store import JsonStore

log = get_logger(__name__)

ALGOLIA_SEARCH = "https://hn.algolia.com/api/v1/search"
ALGOLIA_ITEMS = "https://hn.algolia.com/api/v1/items"
ITEM_URL = "https://news.ycombinator.com/item?id="
CACHE_KEY = "cache/hn-jobs.json"
CACHE_TTL = timedelta(hours=6)
BATCH_SIZE = 10

EXTRACT_PROMPT = """Extract job posting details from HackerNews comment HTML.
Return null if the comment is not a job posting (e.g., it's a question, meta-comment, or seeking freelancer).

The comment may contain HTML tags. Extract:
- title: Job title
- company: Company name
- location: Location (extract city/country if mentioned)
- remote: true if mentions "remote", "work from home", "distributed", "anywhere"
- description: Clean text description (remove HTML, keep key details)
- url: Application URL or company website if present
- salary: Extract if mentioned (look for $, USD, EUR, etc.)
- jobType: full-time, part-time, contract, internship (infer if not explicit)

Return null if this is clearly not a job posting."""


class HackerNewsSource(JobSource):
    name = "hackernews"

    def __init__(self, store: JsonStore, llm: LLMClient, session: requests.Session | None = None) -> None:
        self.store = store
        self.llm = llm
        self.session = session or requests.Session()

    # -- cache -------------------------------------------------------------

    def _cached_jobs(self) -> Optional[list[RawJob]]:
        try:
            cache = self.store.get_json(CACHE_KEY)
            if not cache:
                return None
            expires_at = parse_datetime(cache.get("expiresAt"))
            if expires_at is None or utcnow() > expires_at:
                log.info("HN cache expired")
                return None
            return [RawJob.from_dict(j) for j in cache.get("jobs", [])]
        except (ValueError, TypeError, KeyError, OSError) as exc:
            log.warning("Ignoring unreadable HN cache: %s", exc)
            return None

    def _cache_jobs(self, jobs: list[RawJob]) -> None:
        now = utcnow()
        self.store.put_json(CACHE_KEY, {
            "timestamp": now.isoformat(),
            "expiresAt": (now + CACHE_TTL).isoformat(),
            "jobs": [j.to_dict() for j in jobs],
        })
        log.info("Cached %d HN jobs", len(jobs))

    # -- fetching ----------------------------------------------------------

    @retry(max_attempts=2, base_delay=1.5, retryable=(requests.RequestException, OSError))
    def _get(self, url: str, params: dict | None = None) -> dict:
        r = self.session.get(url, params=params, timeout=20)
        r.raise_for_status()
        return r.json()

    def _fetch_comments(self) -> list[dict]:
        data = self._get(ALGOLIA_SEARCH, {"query": "who is hiring", "tags": "story"})
        hits = data.get("hits") or []
        if not hits:
            log.warning('No "Who is hiring" thread found')
            return []
        story = hits[0]
        log.info("Found latest hiring thread %s: %s", story.get("objectID"), story.get("title"))

        item = self._get(f"{ALGOLIA_ITEMS}/{story['objectID']}")
        children = item.get("children") or []
        if not children:
            log.warning("No comments in hiring thread")
        return children

    def _extract(self, comment: dict) -> Optional[RawJob]:
        comment_id = comment.get("id")
        try:
            result = self.llm.complete_json(
                EXTRACT_PROMPT, comment["text"], Optional[ExtractedJob], model="fast",
            )
        except ExternalServiceError as exc:
            log.warning("AI extraction failed for comment %s: %s", comment_id, exc)
            return None
        if result is None:
            return None
        salary = result.salary.model_dump() if result.salary else None
        return RawJob(
            external_id=f"hn-{comment_id}",
            platform=self.name,
            title=result.title,
            company=result.company,
            location=result.location or "",
            remote=result.remote,
            description=result.description,
            url=result.url or f"{ITEM_URL}{comment_id}",
            salary=salary,
            job_type=result.job_type,
        )

    def _parse_comments(self, comments: list[dict]) -> list[RawJob]:
        postings = [c for c in comments if c.get("text")]
        jobs: list[RawJob] = []
        with ThreadPoolExecutor(max_workers=BATCH_SIZE) as pool:
            for start in range(0, len(postings), BATCH_SIZE):
                batch = postings[start:start + BATCH_SIZE]
                # map() keeps thread order; batches are processed one after another
                for job in pool.map(self._safe_extract, batch):
                    if job is not None:
                        jobs.append(job)
                log.info("HN: processed %d/%d comments", start + len(batch), len(postings))
        return jobs

    def _safe_extract(self, comment: dict) -> Optional[RawJob]:
        try:
            return self._extract(comment)
        except Exception as exc:
            log.warning("Failed to extract job from comment %s: %s", comment.get("id"), exc)
            return None

    # -- JobSource ---------------------------------------------------------

    def search(self, query: SearchQuery) -> list[RawJob]:
        cached = self._cached_jobs()
        if cached is not None:
            log.info("Using cached HN jobs (%d)", len(cached))
            return self.filter(cached, query)

        log.info("Fetching fresh HN jobs")
        try:
            comments = self._fetch_comments()
        except (requests.RequestException, OSError, ValueError, KeyError) as exc:
            log.error("Failed to fetch HN jobs: %s", exc)
            raise SourceFetchError(self.name, str(exc)) from exc

        jobs = self._parse_comments(comments)
        log.info("Parsed %d HN jobs", len(jobs))
        self._cache_jobs(jobs)
        return self.filter(jobs, query)

    def is_available(self) -> bool:
        try:
            r = self.session.get(ALGOLIA_SEARCH, params={"query": "who is hiring", "tags": "story"}, timeout=10)
            return r.ok
        except requests.RequestException:
            return False
