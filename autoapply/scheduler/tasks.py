"""Recurring per-user jobs: auto-search and auto-apply.

Both iterate every user found under ``users/`` and isolate failures per user
(and per configuration or job inside a user), so one bad record never stops
the run.
"""
from __future__ import annotations

import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from autoapply.applicant import AutoApplicant, count_applications_today
from autoapply.log import get_logger
from autoapply.models import JobSummary, utcnow
from autoapply.notifications import Notification, Notifier, notify_safely
from autoapply.schemas import SearchConfiguration, UserSettings
from autoapply.search_engine import JobRepository, SearchEngine
from autoapply.store import JsonStore, list_user_ids
from autoapply.users import load_user_settings, update_user_settings

log = get_logger(__name__)

HIGH_MATCH_SCORE = 80

SEARCH_WINDOWS: dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
}


def should_run_search(config: SearchConfiguration, now: datetime) -> bool:
    if config.last_run_at is None:
        return True
    window = SEARCH_WINDOWS.get(config.frequency)
    if window is None:
        return True
    last = config.last_run_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return now - last >= window


def _stamp_last_run(store: JsonStore, user_id: str, config_id: str, when: datetime) -> None:
    def _mutate(settings: UserSettings) -> None:
        for cfg in settings.search_configurations:
            if cfg.id == config_id:
                cfg.last_run_at = when

    update_user_settings(store, user_id, _mutate)


def run_auto_search(
    store: JsonStore,
    engine: SearchEngine,
    notifier: Notifier | None = None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, int]:
    log.info("Starting auto-search task")
    user_ids = list_user_ids(store)
    log.info("Found %d user(s)", len(user_ids))
    searches = found = 0

    for user_id in user_ids:
        try:
            settings = load_user_settings(store, user_id)
            if settings is None:
                continue
            if not settings.auto_search_enabled:
                log.debug("Auto-search disabled for %s", user_id)
                continue
            active = [c for c in settings.search_configurations if c.enabled]
            if not active:
                log.debug("No active search configurations for %s", user_id)
                continue

            for config in active:
                try:
                    if not should_run_search(config, clock()):
                        log.debug("Skipping search %s for %s - too soon", config.id, user_id)
                        continue
                    result = engine.search_jobs(user_id, config.query)
                    searches += 1
                    found += result.new_jobs
                    _stamp_last_run(store, user_id, config.id, clock())

                    high = [j for j in result.jobs if j.match_score >= HIGH_MATCH_SCORE]
                    if high:
                        notify_safely(notifier, user_id, Notification(
                            type="job_match",
                            priority="high",
                            title=f"{len(high)} High-Match Jobs Found!",
                            message=f"Found {len(high)} jobs matching your criteria with 80+ match score.",
                            data={"jobIds": [j.job_id for j in high[:3]], "totalCount": len(high)},
                        ))
                    log.info("Search %s for %s: %d new, %d high-match",
                             config.id, user_id, result.new_jobs, len(high))
                except Exception:
                    log.exception("Search %s failed for %s", config.id, user_id)
        except Exception:
            log.exception("Failed to process auto-search for %s", user_id)

    log.info("Auto-search task completed: %d search(es), %d new job(s)", searches, found)
    return {"searches": searches, "new_jobs": found}


def select_eligible_jobs(jobs: list[JobSummary], min_score: int, limit: int) -> list[JobSummary]:
    """Discovered jobs at or above ``min_score``, best first, at most ``limit``."""
    if limit <= 0:
        return []
    eligible = [j for j in jobs if j.status == "discovered" and j.match_score >= min_score]
    eligible.sort(key=lambda j: j.match_score, reverse=True)
    return eligible[:limit]


def _result_notification(job: JobSummary, result: Any) -> Optional[Notification]:
    if result.success:
        return Notification(
            type="application_sent",
            priority="medium",
            title="Application Submitted",
            message=f"Successfully applied to {job.company} - {job.title}",
            data={"jobId": job.id, "applicationId": result.application_id, "company": job.company},
        )
    # Manual hand-offs are expected and show up in the job list instead
    if result.error and "manual" not in result.error.lower():
        return Notification(
            type="application_failed",
            priority="low",
            title="Application Failed",
            message=f"Could not auto-apply to {job.company}: {result.error}",
            data={"jobId": job.id, "error": result.error},
        )
    return None


def run_auto_apply(
    store: JsonStore,
    applicant: AutoApplicant,
    notifier: Notifier | None = None,
    *,
    jobs: JobRepository | None = None,
    delay_range: tuple[float, float] = (120.0, 300.0),
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, int]:
    log.info("Starting auto-apply task")
    jobs = jobs or JobRepository(store)
    rng = rng or random.Random()
    user_ids = list_user_ids(store)
    log.info("Found %d user(s)", len(user_ids))
    attempted = applied = 0

    for user_id in user_ids:
        try:
            settings = load_user_settings(store, user_id)
            if settings is None:
                continue
            rules = settings.auto_apply_rules
            if rules is None or not rules.enabled:
                log.debug("Auto-apply disabled for %s", user_id)
                continue

            summaries = jobs.list_jobs(user_id)
            if not summaries:
                log.debug("No jobs found for %s", user_id)
                continue

            today_count = count_applications_today(store, user_id, clock())
            remaining = rules.max_applications_per_day - today_count
            if remaining <= 0:
                log.info("Daily limit reached for %s (%d/%d)", user_id, today_count, rules.max_applications_per_day)
                continue

            batch = select_eligible_jobs(summaries, rules.min_match_score, remaining)
            if not batch:
                log.debug("No eligible jobs for %s (min score %d)", user_id, rules.min_match_score)
                continue
            log.info("Applying to %d job(s) for %s", len(batch), user_id)

            for i, job in enumerate(batch):
                try:
                    log.info("Applying to %s at %s for %s", job.id, job.company, user_id)
                    attempted += 1
                    result = applicant.apply_to_job(user_id, job.id, notify=False)
                    if result.success:
                        applied += 1
                        log.info("Application %s submitted for %s", result.application_id, job.id)
                    else:
                        log.warning("Application for %s failed: %s", job.id, result.error)
                    notification = _result_notification(job, result)
                    if notification is not None:
                        notify_safely(notifier, user_id, notification)
                except Exception:
                    log.exception("Failed to apply to %s for %s", job.id, user_id)

                if i < len(batch) - 1:
                    delay = rng.uniform(*delay_range)
                    log.info("Waiting %.1f minutes before next application", delay / 60)
                    sleep(delay)
        except Exception:
            log.exception("Failed to process auto-apply for %s", user_id)

    log.info("Auto-apply task completed: %d attempted, %d submitted", attempted, applied)
    return {"attempted": attempted, "applied": applied}
