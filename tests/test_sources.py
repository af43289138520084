import json

import pytest
import requests

from autoapply.errors import SourceFetchError
from autoapply.models import Salary
from autoapply.schemas import SearchQuery
from autoapply.sources import get_sources
from autoapply.sources.base import JobSource, TTLCache
from autoapply.sources.hackernews import CACHE_KEY, HackerNewsSource
from autoapply.sources.remoteok import RemoteOKSource
from autoapply.sources.remotive import RemotiveSource, _search_terms
from autoapply.config import AgentSettings
from autoapply.llm import LLMClient

from conftest import fake_llm, make_job


class FakeResponse:
    def __init__(self, payload=None, status=200, error=None):
        self._payload = payload
        self.status_code = status
        self._error = error

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._error is not None:
            raise self._error
        return self._payload


class FakeSession:
    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, params=None, **kwargs):
        self.calls.append((url, params))
        return self.handler(url, params)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# -- query matching ----------------------------------------------------------

def test_matches_query_keywords_and_remote():
    job = make_job()
    assert JobSource.matches_query(job, SearchQuery(keywords=["PYTHON"]))
    assert not JobSource.matches_query(job, SearchQuery(keywords=["golang"]))
    assert not JobSource.matches_query(job, SearchQuery(remote=False))


def test_matches_query_location_only_for_onsite():
    onsite = make_job(remote=False, location="Berlin, DE")
    assert JobSource.matches_query(onsite, SearchQuery(location="berlin"))
    assert not JobSource.matches_query(onsite, SearchQuery(location="Paris"))
    assert JobSource.matches_query(make_job(), SearchQuery(location="Paris"))


def test_matches_query_salary_and_exclusions():
    paid = make_job(salary=Salary(min=50_000, max=80_000))
    assert not JobSource.matches_query(paid, SearchQuery(min_salary=100_000))
    assert JobSource.matches_query(paid, SearchQuery(min_salary=70_000))
    assert JobSource.matches_query(make_job(), SearchQuery(min_salary=100_000))
    assert not JobSource.matches_query(make_job(), SearchQuery(exclude_companies=["acme"]))


def test_ttl_cache_expires():
    clock = FakeClock()
    cache = TTLCache(300, clock=clock)
    cache.put("k", [make_job()])
    clock.now += 299
    assert len(cache.get("k")) == 1
    clock.now += 1
    assert cache.get("k") is None


# -- RemoteOK ----------------------------------------------------------------

REMOTEOK_PAYLOAD = [
    {"legal": "API terms"},
    {
        "id": "101", "position": "Python Developer", "company": "Initech",
        "description": "Django and Postgres", "url": "https://remoteok.com/l/101",
        "salary_min": 90000, "salary_max": 120000, "tags": ["python"],
        "date": "2026-10-01T10:00:00+00:00",
    },
    {"id": "102", "position": "Designer", "company": "Hooli", "description": "Figma"},
]


def test_remoteok_skips_notice_and_filters():
    session = FakeSession(lambda url, params: FakeResponse(REMOTEOK_PAYLOAD))
    jobs = RemoteOKSource(session=session).search(SearchQuery(keywords=["python"]))

    assert [j.external_id for j in jobs] == ["101"]
    job = jobs[0]
    assert job.platform == "remoteok"
    assert job.remote is True
    assert job.location == "Remote"
    assert job.salary.min == 90000
    assert job.posted_at.year == 2026


def test_remoteok_uses_cache_for_same_query():
    session = FakeSession(lambda url, params: FakeResponse(REMOTEOK_PAYLOAD))
    source = RemoteOKSource(session=session)
    source.search(SearchQuery(keywords=["python"]))
    source.search(SearchQuery(keywords=["Python"]))
    assert len(session.calls) == 1


def test_remoteok_cached_feed_is_filtered_per_query():
    payload = [
        {"legal": "API terms"},
        {"id": "1", "position": "Python Dev", "company": "EvilCorp", "description": "python",
         "salary_min": 40000, "salary_max": 60000},
        {"id": "2", "position": "Python Dev", "company": "Good", "description": "python"},
    ]
    session = FakeSession(lambda url, params: FakeResponse(payload))
    source = RemoteOKSource(session=session)

    first = source.search(SearchQuery(keywords=["python"]))
    excluded = source.search(SearchQuery(keywords=["python"], exclude_companies=["evilcorp"]))
    paid = source.search(SearchQuery(keywords=["python"], min_salary=100_000))

    assert [j.company for j in first] == ["EvilCorp", "Good"]
    assert [j.company for j in excluded] == ["Good"]
    assert [j.company for j in paid] == ["Good"]
    assert len(session.calls) == 1


def test_remoteok_is_available():
    assert RemoteOKSource(session=FakeSession(lambda url, params: FakeResponse([]))).is_available()
    assert not RemoteOKSource(session=FakeSession(lambda url, params: FakeResponse(status=503))).is_available()

    def unreachable(url, params):
        raise requests.ConnectionError("no route")

    assert not RemoteOKSource(session=FakeSession(unreachable)).is_available()


def test_remoteok_bad_payload_raises_fetch_error():
    session = FakeSession(lambda url, params: FakeResponse(error=ValueError("bad json")))
    with pytest.raises(SourceFetchError) as info:
        RemoteOKSource(session=session).search(SearchQuery())
    assert info.value.platform == "remoteok"


# -- Remotive ----------------------------------------------------------------

def test_remotive_search_terms_drop_generic_words():
    assert _search_terms(["Senior Python Engineer", "Staff Data Engineer"]) == ["python", "data"]
    assert _search_terms(["Engineer"]) == ["engineer"]
    assert _search_terms([]) == [""]
    assert len(_search_terms(["a", "b", "c", "d"])) == 3


def test_remotive_merges_terms_without_duplicates():
    hit = {"id": 7, "title": "Python Engineer", "company_name": "Umbrella",
           "candidate_required_location": "Europe", "description": "Python and data", "url": "https://x"}

    def handler(url, params):
        return FakeResponse({"jobs": [hit]})

    session = FakeSession(handler)
    jobs = RemotiveSource(session=session).search(SearchQuery(keywords=["python", "data"]))

    assert len(session.calls) == 2
    assert [j.external_id for j in jobs] == ["7"]
    assert jobs[0].location == "Europe"


def test_remotive_partial_failure_is_tolerated():
    def handler(url, params):
        if params.get("search") == "rust":
            return FakeResponse(error=ValueError("boom"))
        return FakeResponse({"jobs": [{"id": 1, "title": "Python Dev", "company_name": "A",
                                       "description": "python"}]})

    jobs = RemotiveSource(session=FakeSession(handler)).search(SearchQuery(keywords=["python", "rust"]))
    assert len(jobs) == 1


def test_remotive_cached_postings_are_filtered_per_query():
    hits = [
        {"id": 1, "title": "Python Dev", "company_name": "EvilCorp", "description": "python"},
        {"id": 2, "title": "Python Dev", "company_name": "Good", "description": "python"},
    ]
    session = FakeSession(lambda url, params: FakeResponse({"jobs": hits}))
    source = RemotiveSource(session=session)

    first = source.search(SearchQuery(keywords=["python"]))
    excluded = source.search(SearchQuery(keywords=["python"], exclude_companies=["EvilCorp"]))

    assert [j.company for j in first] == ["EvilCorp", "Good"]
    assert [j.company for j in excluded] == ["Good"]
    assert len(session.calls) == 1


def test_remotive_is_available():
    session = FakeSession(lambda url, params: FakeResponse({"jobs": []}))
    assert RemotiveSource(session=session).is_available()
    assert session.calls == [("https://remotive.com/api/remote-jobs", {"limit": 1})]
    assert not RemotiveSource(session=FakeSession(lambda url, params: FakeResponse(status=500))).is_available()


def test_remotive_all_terms_failing_raises():
    session = FakeSession(lambda url, params: FakeResponse(error=ValueError("boom")))
    with pytest.raises(SourceFetchError):
        RemotiveSource(session=session).search(SearchQuery(keywords=["python"]))


# -- HackerNews --------------------------------------------------------------

def _hn_handler(url, params):
    if url.endswith("/search"):
        return FakeResponse({"hits": [{"objectID": "500", "title": "Ask HN: Who is hiring?"}]})
    return FakeResponse({"children": [
        {"id": 1, "text": "Acme | Python Engineer | REMOTE | apply at https://acme.dev/jobs"},
        {"id": 2, "text": "Does anyone know if these are real?"},
        {"id": 3, "text": None},
    ]})


def _hn_reply(kwargs):
    text = kwargs["messages"][1]["content"]
    if "Acme" in text:
        return json.dumps({
            "title": "Python Engineer", "company": "Acme", "remote": True,
            "description": "Python engineer, remote", "url": "https://acme.dev/jobs",
            "salary": {"min": 150000, "currency": "USD"},
        })
    return "null"


def test_hackernews_extracts_postings_and_caches(store):
    session = FakeSession(_hn_handler)
    llm = fake_llm(_hn_reply)
    source = HackerNewsSource(store, llm, session=session)

    jobs = source.search(SearchQuery(keywords=["python"]))

    assert len(jobs) == 1
    job = jobs[0]
    assert job.external_id == "hn-1"
    assert job.platform == "hackernews"
    assert job.salary.min == 150000
    # comment without text is never sent to the model
    assert len(llm._client.calls) == 2

    cache = store.get_json(CACHE_KEY)
    assert len(cache["jobs"]) == 1
    assert "expiresAt" in cache

    again = source.search(SearchQuery())
    assert [j.external_id for j in again] == ["hn-1"]
    assert len(session.calls) == 2


def test_hackernews_defaults_url_to_thread_item(store):
    def reply(kwargs):
        return json.dumps({"title": "SRE", "company": "Acme"})

    session = FakeSession(_hn_handler)
    jobs = HackerNewsSource(store, fake_llm(reply), session=session).search(SearchQuery(keywords=["sre"]))
    assert jobs[0].url == "https://news.ycombinator.com/item?id=1"


def test_hackernews_fetch_failure(store):
    session = FakeSession(lambda url, params: FakeResponse(error=ValueError("bad")))
    with pytest.raises(SourceFetchError):
        HackerNewsSource(store, fake_llm([]), session=session).search(SearchQuery())


def test_hackernews_is_available(store):
    session = FakeSession(_hn_handler)
    assert HackerNewsSource(store, fake_llm([]), session=session).is_available()
    assert session.calls[0][0] == "https://hn.algolia.com/api/v1/search"

    def unreachable(url, params):
        raise requests.Timeout("timed out")

    assert not HackerNewsSource(store, fake_llm([]), session=FakeSession(unreachable)).is_available()


# -- registry ----------------------------------------------------------------

def test_get_sources_skips_hackernews_without_llm(store):
    settings = AgentSettings(sources=["remoteok", "hackernews", "nope"])
    names = [s.name for s in get_sources(settings, store, LLMClient(""))]
    assert names == ["remoteok"]

    names = [s.name for s in get_sources(settings, store, fake_llm([]))]
    assert names == ["remoteok", "hackernews"]
