import random
from datetime import datetime, timedelta, timezone

from autoapply.applicant import applications_index_key
from autoapply.models import ApplicationResult, JobSummary, ScoredJob, SearchResult
from autoapply.schemas import SearchConfiguration
from autoapply.scheduler import run_auto_apply, run_auto_search, select_eligible_jobs, should_run_search
from autoapply.search_engine import JobRepository
from autoapply.store import user_key
from autoapply.users import load_user_settings

from conftest import make_job, seed_user

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _summary(job_id, score, status="discovered"):
    return JobSummary(id=job_id, external_id=job_id, platform="remoteok", title="Engineer",
                      company="Acme", match_score=score, status=status)


# -- auto-search -------------------------------------------------------------

def test_should_run_search_windows():
    cfg = SearchConfiguration(id="s1", frequency="daily")
    assert should_run_search(cfg, NOW)
    cfg.last_run_at = NOW - timedelta(hours=23)
    assert not should_run_search(cfg, NOW)
    cfg.last_run_at = NOW - timedelta(hours=24)
    assert should_run_search(cfg, NOW)
    # naive timestamps are read as UTC
    cfg.last_run_at = datetime(2026, 10, 17, 11, 30)
    cfg.frequency = "hourly"
    assert not should_run_search(cfg, NOW)


class FakeEngine:
    def __init__(self, scores):
        self.scores = scores
        self.queries = []

    def search_jobs(self, user_id, query):
        self.queries.append((user_id, query.keywords))
        jobs = [ScoredJob.from_raw(make_job(str(i)), s) for i, s in enumerate(self.scores)]
        return SearchResult(total_results=len(jobs), new_jobs=len(jobs), platform_results=[], jobs=jobs)


def _search_settings(**overrides):
    settings = {
        "autoSearchEnabled": True,
        "searchConfigurations": [
            {"id": "s1", "query": {"keywords": ["python"]}, "frequency": "daily"},
            {"id": "s2", "query": {"keywords": ["rust"]}, "enabled": False},
        ],
        "theme": "dark",
    }
    settings.update(overrides)
    return settings


def test_auto_search_runs_due_configs_and_notifies(store, notifier):
    seed_user(store, settings=_search_settings())
    seed_user(store, "u2", settings=_search_settings(autoSearchEnabled=False))
    engine = FakeEngine([85, 92, 40])

    stats = run_auto_search(store, engine, notifier, clock=lambda: NOW)

    assert stats == {"searches": 1, "new_jobs": 3}
    assert engine.queries == [("u1", ["python"])]
    settings = load_user_settings(store, "u1")
    assert settings.search_configurations[0].last_run_at == NOW
    assert settings.search_configurations[1].last_run_at is None
    # keys the agent does not model survive the write-back
    assert store.get_json(user_key("u1", "settings.json"))["theme"] == "dark"

    [(user_id, note)] = notifier.sent
    assert user_id == "u1"
    assert note.type == "job_match"
    assert note.priority == "high"
    assert note.title == "2 High-Match Jobs Found!"

    # same day: nothing is due
    again = run_auto_search(store, engine, notifier, clock=lambda: NOW + timedelta(hours=1))
    assert again["searches"] == 0


def test_auto_search_without_high_matches_is_quiet(store, notifier):
    seed_user(store, settings=_search_settings())
    run_auto_search(store, FakeEngine([50]), notifier, clock=lambda: NOW)
    assert notifier.sent == []


def test_auto_search_isolates_user_failures(store):
    seed_user(store, settings=_search_settings())
    store.put_json(user_key("bad", "settings.json"), {"searchConfigurations": "not a list"})

    class Failing(FakeEngine):
        def search_jobs(self, user_id, query):
            raise RuntimeError("index locked")

    assert run_auto_search(store, Failing([]), clock=lambda: NOW)["searches"] == 0
    assert run_auto_search(store, FakeEngine([10]), clock=lambda: NOW)["searches"] == 1


# -- auto-apply --------------------------------------------------------------

def test_select_eligible_jobs():
    jobs = [_summary("a", 65), _summary("b", 85), _summary("c", 95, status="applied"), _summary("d", 72)]
    assert [j.id for j in select_eligible_jobs(jobs, 70, 10)] == ["b", "d"]
    assert [j.id for j in select_eligible_jobs(jobs, 70, 1)] == ["b"]
    assert select_eligible_jobs(jobs, 70, 0) == []


class FakeApplicant:
    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.calls = []

    def apply_to_job(self, user_id, job_id, *, notify=True):
        self.calls.append((user_id, job_id, notify))
        outcome = self.outcomes.get(job_id, True)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is True:
            return ApplicationResult(success=True, method="direct_website", application_id=f"app-{job_id}")
        return ApplicationResult(success=False, method="direct_website", error=outcome)


def _seed_jobs(store, scores):
    jobs = [ScoredJob.from_raw(make_job(str(i), company=f"Co{i}"), s) for i, s in enumerate(scores)]
    JobRepository(store).save_scored("u1", jobs)


def _apply_settings(enabled=True, min_score=70, per_day=10):
    return {"autoApplyRules": {"enabled": enabled, "minMatchScore": min_score,
                               "maxApplicationsPerDay": per_day}}


def test_auto_apply_sleeps_between_applications(store, notifier):
    seed_user(store, settings=_apply_settings())
    _seed_jobs(store, [65, 85, 90, 75])
    applicant = FakeApplicant()
    sleeps = []

    stats = run_auto_apply(store, applicant, notifier, delay_range=(120, 300), sleep=sleeps.append,
                           rng=random.Random(1), clock=lambda: NOW)

    assert stats == {"attempted": 3, "applied": 3}
    assert [c[1] for c in applicant.calls] == ["remoteok-2", "remoteok-1", "remoteok-3"]
    assert all(notify is False for _, _, notify in applicant.calls)
    assert len(sleeps) == 2
    assert all(120 <= s <= 300 for s in sleeps)
    assert [n.title for _, n in notifier.sent] == ["Application Submitted"] * 3


def test_auto_apply_respects_remaining_quota(store):
    seed_user(store, settings=_apply_settings(per_day=3))
    _seed_jobs(store, [90, 91, 92])
    store.put_json(applications_index_key("u1"), {"applications": [
        {"id": "x", "applied_at": NOW.isoformat()},
        {"id": "y", "applied_at": NOW.isoformat()},
    ]})
    applicant = FakeApplicant()

    stats = run_auto_apply(store, applicant, sleep=lambda s: None, clock=lambda: NOW)

    assert stats["attempted"] == 1
    assert applicant.calls[0][1] == "remoteok-2"


def test_auto_apply_quota_exhausted(store):
    seed_user(store, settings=_apply_settings())
    _seed_jobs(store, [90])
    store.put_json(applications_index_key("u1"), {"applications": [
        {"id": str(i), "applied_at": NOW.isoformat()} for i in range(10)
    ]})
    applicant = FakeApplicant()

    assert run_auto_apply(store, applicant, sleep=lambda s: None, clock=lambda: NOW)["attempted"] == 0
    assert applicant.calls == []


def test_auto_apply_disabled(store):
    seed_user(store, settings=_apply_settings(enabled=False))
    _seed_jobs(store, [90])
    applicant = FakeApplicant()
    assert run_auto_apply(store, applicant, sleep=lambda s: None, clock=lambda: NOW)["attempted"] == 0


def test_auto_apply_failure_notifications(store, notifier):
    seed_user(store, settings=_apply_settings())
    _seed_jobs(store, [90, 80, 75])
    applicant = FakeApplicant({
        "remoteok-0": "Could not find submit button. Form filled but not submitted.",
        "remoteok-1": "This job requires manual application.",
        "remoteok-2": RuntimeError("crashed"),
    })

    stats = run_auto_apply(store, applicant, notifier, sleep=lambda s: None, clock=lambda: NOW)

    assert stats == {"attempted": 3, "applied": 0}
    [(_, note)] = notifier.sent
    assert note.title == "Application Failed"
    assert note.priority == "low"
