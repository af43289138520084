import pytest

from autoapply.errors import NotFoundError, SourceFetchError, ValidationError
from autoapply.schemas import SearchQuery
from autoapply.scorer import JobScorer
from autoapply.search_engine import SearchEngine
from autoapply.sources.base import JobSource
from autoapply.store import user_key

from conftest import fake_llm, make_job, match_reply, seed_user


class StaticSource(JobSource):
    def __init__(self, name, jobs):
        self.name = name
        self.jobs = jobs
        self.calls = 0

    def search(self, query):
        self.calls += 1
        return self.filter(list(self.jobs), query)

    def is_available(self):
        return True


class BrokenSource(JobSource):
    name = "broken"

    def search(self, query):
        raise SourceFetchError(self.name, "upstream returned 503")

    def is_available(self):
        return False


def _engine(store, sources, score=75):
    return SearchEngine(store, sources, JobScorer(fake_llm(lambda _: match_reply(score))))


def test_search_isolates_failing_platform(store):
    seed_user(store)
    good = StaticSource("remoteok", [make_job("1"), make_job("2", title="Data Engineer", company="Globex")])
    engine = _engine(store, [good, BrokenSource()])

    result = engine.search_jobs("u1", SearchQuery())

    assert result.total_results == 2
    assert result.new_jobs == 2
    by_platform = {pr.platform: pr for pr in result.platform_results}
    assert by_platform["remoteok"].count == 2
    assert by_platform["remoteok"].error is None
    assert by_platform["broken"].count == 0
    assert "503" in by_platform["broken"].error


def test_search_dedupes_across_platforms_and_indexes(store):
    seed_user(store)
    a = StaticSource("remoteok", [make_job("1", description="short")])
    b = StaticSource("remotive", [make_job("9", platform="remotive", company="Acme Inc.",
                                           description="a much longer description of the role")])
    engine = _engine(store, [a, b], score=88)

    result = engine.search_jobs("u1", SearchQuery())

    assert result.total_results == 1
    assert result.jobs[0].platform == "remotive"
    rows = store.get_json(user_key("u1", "jobs", "index.json"))
    assert [r["id"] for r in rows] == ["remotive-9"]
    detail = store.get_json(user_key("u1", "jobs", "remotive-9.json"))
    assert detail["id"] == "remotive-9"
    assert detail["status"] == "discovered"
    assert detail["match_score"] == 88


def test_index_is_sorted_by_score(store):
    seed_user(store)
    scores = {"Backend Engineer": "40", "Data Engineer": "90"}

    def reply(kwargs):
        prompt = kwargs["messages"][1]["content"]
        title = "Data Engineer" if "Data Engineer" in prompt else "Backend Engineer"
        return match_reply(float(scores[title]))

    source = StaticSource("remoteok", [make_job("1"), make_job("2", title="Data Engineer", company="Globex")])
    engine = SearchEngine(store, [source], JobScorer(fake_llm(reply)))
    engine.search_jobs("u1", SearchQuery())

    rows = engine.list_jobs("u1")
    assert [r.match_score for r in rows] == [90, 40]
    assert [r.match_score for r in engine.list_jobs("u1", min_score=50)] == [90]


def test_rescoring_keeps_pipeline_state(store):
    seed_user(store)
    source = StaticSource("remoteok", [make_job("1")])
    engine = _engine(store, [source], score=60)
    engine.search_jobs("u1", SearchQuery())
    engine.update_job_status("u1", "remoteok-1", "saved")

    rerun = _engine(store, [source], score=95)
    result = rerun.search_jobs("u1", SearchQuery())

    assert result.new_jobs == 0
    job = rerun.get_job("u1", "remoteok-1")
    assert job.status == "saved"
    assert job.match_score == 95
    assert len(rerun.list_jobs("u1")) == 1


def test_update_status_to_applied_stamps_time(store):
    seed_user(store)
    engine = _engine(store, [StaticSource("remoteok", [make_job("1")])])
    engine.search_jobs("u1", SearchQuery())

    job = engine.update_job_status("u1", "remoteok-1", "applied")

    assert job.applied_at is not None
    row = engine.list_jobs("u1", status="applied")[0]
    assert row.applied_at == job.applied_at


def test_update_status_errors(store):
    seed_user(store)
    engine = _engine(store, [StaticSource("remoteok", [make_job("1")])])
    engine.search_jobs("u1", SearchQuery())

    with pytest.raises(NotFoundError):
        engine.update_job_status("u1", "missing", "saved")
    with pytest.raises(ValidationError):
        engine.update_job_status("u1", "remoteok-1", "hired")


def test_search_requires_profile(store):
    engine = _engine(store, [StaticSource("remoteok", [make_job("1")])])
    with pytest.raises(NotFoundError):
        engine.search_jobs("nobody", SearchQuery())


def test_keyword_filter_applies_per_source(store):
    seed_user(store)
    source = StaticSource("remoteok", [make_job("1"), make_job("2", title="Designer", description="Figma")])
    engine = _engine(store, [source])
    result = engine.search_jobs("u1", SearchQuery(keywords=["python"]))
    assert [j.external_id for j in result.jobs] == ["1"]
