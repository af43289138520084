from datetime import datetime, timezone

from autoapply.dedupe import (
    analyze_duplicates,
    are_duplicates,
    choose_better,
    deduplicate,
    normalize_company,
    normalize_title,
)
from autoapply.models import ScoredJob

from conftest import make_job


def test_normalize_company_strips_legal_suffixes():
    assert normalize_company("Google Inc.") == "google"
    assert normalize_company("Acme Corp, LLC") == "acme"
    assert normalize_company("  Stripe_Payments  Co ") == "stripe payments"


def test_normalize_title():
    assert normalize_title("Sr. Software-Engineer") == "sr software engineer"


def test_google_inc_collapses_to_one():
    jobs = [
        make_job("1", company="Google Inc.", title="Software Engineer"),
        make_job("2", platform="hackernews", company="Google", title="Software Engineer"),
    ]
    assert len(deduplicate(jobs)) == 1


def test_different_titles_are_kept():
    a = make_job("1", company="Acme", title="Frontend Engineer")
    b = make_job("2", company="Acme", title="Data Scientist")
    assert not are_duplicates(a, b)
    assert deduplicate([a, b]) == [a, b]


def test_keeps_longer_description_in_first_position():
    short = make_job("1", description="short")
    longer = make_job("2", platform="remotive", description="a much longer description")
    other = make_job("3", company="Initech", title="QA Lead")
    out = deduplicate([short, other, longer])
    assert out == [longer, other]


def test_priority_order():
    base = dict(company="Acme", title="Backend Engineer", description="same")
    a = make_job("1", **base)
    with_salary = make_job("2", salary={"min": 100, "max": 150}, **base)
    assert choose_better(a, with_salary) is with_salary

    no_url = make_job("3", url=None, **base)
    assert choose_better(no_url, a) is a

    old = make_job("4", posted_at=datetime(2024, 1, 1, tzinfo=timezone.utc), **base)
    new = make_job("5", posted_at=datetime(2024, 6, 1, tzinfo=timezone.utc), **base)
    assert choose_better(old, new) is new

    # Identical on every criterion: first seen wins
    twin = make_job("6", **base)
    assert choose_better(a, twin) is a


def test_higher_match_score_beats_longer_description():
    a = ScoredJob.from_raw(make_job("1", description="long " * 20), 60)
    b = ScoredJob.from_raw(make_job("2", description="short"), 90)
    assert deduplicate([a, b]) == [b]


def test_idempotent():
    jobs = [
        make_job("1", company="Google Inc.", title="Software Engineer"),
        make_job("2", company="Google", title="Software Engineer II", description="longer text here"),
        make_job("3", company="Googl", title="Software Engineers"),
        make_job("4", company="Meta", title="Software Engineer"),
        make_job("5", company="Meta Platforms", title="Software Engineer"),
        make_job("6", company="Acme", title="Data Engineer"),
    ]
    once = deduplicate(jobs)
    assert deduplicate(once) == once
    for i, a in enumerate(once):
        for b in once[i + 1:]:
            assert not are_duplicates(a, b)


def test_input_not_mutated():
    jobs = [make_job("1"), make_job("2", description="longer description")]
    snapshot = list(jobs)
    deduplicate(jobs)
    assert jobs == snapshot


def test_analyze_duplicates():
    jobs = [make_job("1"), make_job("2"), make_job("3", company="Initech", title="QA Lead")]
    assert analyze_duplicates(jobs) == {"total": 3, "unique": 2, "duplicates": 1}
    assert analyze_duplicates([]) == {"total": 0, "unique": 0, "duplicates": 0}
