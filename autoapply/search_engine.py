"""Search orchestration and the per-user job index.

Layout in the store::

    users/{uid}/jobs/index.json      list of JobSummary rows, best score first
    users/{uid}/jobs/{job_id}.json   full Job record
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from autoapply.dedupe import deduplicate
from autoapply.errors import NotFoundError
from autoapply.log import get_logger
from autoapply.models import (
    Job,
    JobSummary,
    PlatformResult,
    RawJob,
    ScoredJob,
    SearchResult,
    utcnow,
    check_status,
)
from autoapply.schemas import SearchQuery
from autoapply.scorer import JobScorer
from autoapply.sources.base import JobSource
from autoapply.store import JsonStore, user_key
from autoapply.users import load_profile

log = get_logger(__name__)


def _index_key(user_id: str) -> str:
    return user_key(user_id, "jobs", "index.json")


def _job_key(user_id: str, job_id: str) -> str:
    return user_key(user_id, "jobs", f"{job_id}.json")


def _sort_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda r: r.get("match_score", 0), reverse=True)


class JobRepository:
    """Reads and writes job records; index rows are upserted by job id."""

    def __init__(self, store: JsonStore) -> None:
        self.store = store

    def get_job(self, user_id: str, job_id: str) -> Optional[Job]:
        data = self.store.get_json(_job_key(user_id, job_id))
        return Job.from_dict(data) if data else None

    def list_jobs(
        self,
        user_id: str,
        *,
        status: str | None = None,
        min_score: int | None = None,
        platform: str | None = None,
    ) -> list[JobSummary]:
        rows = self.store.get_json(_index_key(user_id)) or []
        jobs = [JobSummary.from_dict(r) for r in rows]
        if status:
            jobs = [j for j in jobs if j.status == status]
        if min_score is not None:
            jobs = [j for j in jobs if j.match_score >= min_score]
        if platform:
            jobs = [j for j in jobs if j.platform == platform]
        return jobs

    def save_scored(self, user_id: str, jobs: list[ScoredJob]) -> int:
        """Upsert index rows and detail files; returns how many were new."""
        now = utcnow()
        known: set[str] = set()

        def _upsert(rows: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
            rows = list(rows or [])
            by_id = {r.get("id"): r for r in rows}
            known.update(i for i in by_id if i)
            for job in jobs:
                row = by_id.get(job.job_id)
                if row is not None:
                    row["match_score"] = job.match_score
                    row["updated_at"] = now.isoformat()
                    continue
                summary = Job.from_dict({**job.to_dict(), "saved_at": now, "updated_at": now}).summary()
                row = summary.to_dict()
                rows.append(row)
                by_id[job.job_id] = row
            return _sort_rows(rows)

        self.store.update_json(_index_key(user_id), _upsert)

        new_count = 0
        for job in jobs:
            existing = self.get_job(user_id, job.job_id) if job.job_id in known else None
            if job.job_id not in known:
                new_count += 1
            if existing is None:
                detail = Job.from_dict({**job.to_dict(), "status": "discovered", "saved_at": now, "updated_at": now})
            else:
                # Rescoring refreshes the posting and score; pipeline state is kept
                detail = Job.from_dict({
                    **job.to_dict(),
                    "status": existing.status,
                    "saved_at": existing.saved_at,
                    "applied_at": existing.applied_at,
                    "application_id": existing.application_id,
                    "updated_at": now,
                })
            self._write_detail(user_id, detail)

        log.info("Saved %d job(s) for %s (%d new)", len(jobs), user_id, new_count)
        return new_count

    def _write_detail(self, user_id: str, job: Job) -> None:
        self.store.put_json(_job_key(user_id, job.job_id), {"id": job.job_id, **job.to_dict()})

    def _update_row(self, user_id: str, job: Job) -> None:
        def _apply(rows: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
            rows = list(rows or [])
            for i, row in enumerate(rows):
                if row.get("id") == job.job_id:
                    rows[i] = job.summary().to_dict()
                    break
            return rows

        self.store.update_json(_index_key(user_id), _apply)

    def update_status(self, user_id: str, job_id: str, status: str) -> Job:
        check_status(status)
        job = self.get_job(user_id, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        job.status = status
        job.updated_at = utcnow()
        if status == "applied":
            job.applied_at = job.updated_at
        self._write_detail(user_id, job)
        self._update_row(user_id, job)
        return job

    def attach_application(self, user_id: str, job_id: str, application_id: str, *, applied: bool) -> Optional[Job]:
        job = self.get_job(user_id, job_id)
        if job is None:
            log.warning("Cannot attach application %s: job %s missing", application_id, job_id)
            return None
        job.application_id = application_id
        job.updated_at = utcnow()
        if applied:
            job.status = "applied"
            job.applied_at = job.updated_at
        self._write_detail(user_id, job)
        self._update_row(user_id, job)
        return job


class SearchEngine:
    def __init__(self, store: JsonStore, sources: list[JobSource], scorer: JobScorer) -> None:
        self.store = store
        self.sources = sources
        self.scorer = scorer
        self.jobs = JobRepository(store)

    def _search_source(self, source: JobSource, query: SearchQuery) -> tuple[list[RawJob], Optional[str]]:
        try:
            results = source.search(query)
            log.info("[%s] returned %d jobs", source.name, len(results))
            return results, None
        except Exception as exc:
            log.error("[%s] FAILED: %s", source.name, exc)
            return [], str(exc) or exc.__class__.__name__

    def search_all(self, query: SearchQuery) -> tuple[list[RawJob], list[PlatformResult]]:
        if not self.sources:
            return [], []
        log.info("Searching %d source(s) in parallel...", len(self.sources))
        with ThreadPoolExecutor(max_workers=len(self.sources)) as pool:
            futures = [pool.submit(self._search_source, src, query) for src in self.sources]
            outcomes = [f.result() for f in futures]

        collected: list[RawJob] = []
        platform_results: list[PlatformResult] = []
        for source, (jobs, error) in zip(self.sources, outcomes):
            collected.extend(jobs)
            platform_results.append(PlatformResult(platform=source.name, count=len(jobs), error=error))
        return collected, platform_results

    def search_jobs(self, user_id: str, query: SearchQuery) -> SearchResult:
        log.info("Starting job search for %s: %s", user_id, query.keywords)
        profile = load_profile(self.store, user_id)

        collected, platform_results = self.search_all(query)
        unique = deduplicate(collected)
        log.info("Deduplicated %d -> %d jobs", len(collected), len(unique))

        scored = self.scorer.batch_score(profile, unique)
        scored.sort(key=lambda j: j.match_score, reverse=True)

        new_jobs = self.jobs.save_scored(user_id, scored)
        return SearchResult(
            total_results=len(scored),
            new_jobs=new_jobs,
            platform_results=platform_results,
            jobs=scored,
        )

    def get_job(self, user_id: str, job_id: str) -> Optional[Job]:
        return self.jobs.get_job(user_id, job_id)

    def list_jobs(self, user_id: str, **filters: Any) -> list[JobSummary]:
        return self.jobs.list_jobs(user_id, **filters)

    def update_job_status(self, user_id: str, job_id: str, status: str) -> Job:
        return self.jobs.update_status(user_id, job_id, status)
