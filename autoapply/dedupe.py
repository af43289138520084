"""Collapse postings of the same opening that arrive from different sources."""
from __future__ import annotations

import re
from typing import TypeVar

from rapidfuzz.distance import JaroWinkler

from autoapply.log import get_logger
from autoapply.models import RawJob, ScoredJob

log = get_logger(__name__)

SIMILARITY_THRESHOLD = 0.85

_LEGAL_SUFFIX_RE = re.compile(r"\b(inc|llc|ltd|corp|corporation|company|co)\b")
_PUNCT_RE = re.compile(r"[.,\-_]")
_SPACE_RE = re.compile(r"\s+")

J = TypeVar("J", bound=RawJob)


def normalize_company(company: str) -> str:
    text = _LEGAL_SUFFIX_RE.sub("", (company or "").lower())
    text = _PUNCT_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


def normalize_title(title: str) -> str:
    text = _PUNCT_RE.sub(" ", (title or "").lower())
    return _SPACE_RE.sub(" ", text).strip()


def similarity(a: str, b: str) -> float:
    return JaroWinkler.normalized_similarity(a, b)


def are_duplicates(a: RawJob, b: RawJob) -> bool:
    """Same opening iff both company and title are at least 0.85 similar."""
    company = similarity(normalize_company(a.company), normalize_company(b.company))
    if company < SIMILARITY_THRESHOLD:
        return False
    title = similarity(normalize_title(a.title), normalize_title(b.title))
    return title >= SIMILARITY_THRESHOLD


def _posted_ts(job: RawJob) -> float:
    return job.posted_at.timestamp() if job.posted_at else 0.0


def choose_better(first: J, second: J) -> J:
    """Pick the record to keep; ``first`` is the one seen earlier and wins ties."""
    if isinstance(first, ScoredJob) and isinstance(second, ScoredJob):
        if first.match_score != second.match_score:
            return first if first.match_score > second.match_score else second

    if len(first.description) != len(second.description):
        return first if len(first.description) > len(second.description) else second

    if bool(first.salary) != bool(second.salary):
        return first if first.salary else second

    if bool(first.url) != bool(second.url):
        return first if first.url else second

    if _posted_ts(first) != _posted_ts(second):
        return first if _posted_ts(first) > _posted_ts(second) else second

    return first


def _settle(unique: list[J], idx: int) -> int:
    """Merge any survivor that duplicates ``unique[idx]`` after a replacement.

    Similarity is not transitive, so a replacement can collide with another
    survivor. Merges keep the earlier position. Returns the number merged.
    """
    merged = 0
    while True:
        current = unique[idx]
        other = next(
            (j for j, job in enumerate(unique) if j != idx and are_duplicates(current, job)),
            None,
        )
        if other is None:
            return merged
        lo, hi = sorted((idx, other))
        unique[lo] = choose_better(unique[lo], unique[hi])
        del unique[hi]
        idx = lo
        merged += 1


def deduplicate(jobs: list[J]) -> list[J]:
    """Order-stable on first occurrence; the result is pairwise duplicate-free.

    Pure: no I/O and the input list is left untouched.
    """
    unique: list[J] = []
    removed = 0
    for job in jobs:
        idx = next((i for i, kept in enumerate(unique) if are_duplicates(job, kept)), None)
        if idx is None:
            unique.append(job)
            continue
        removed += 1
        existing = unique[idx]
        if choose_better(existing, job) is job:
            unique[idx] = job
            log.debug("Duplicate: kept %s - %s over %s - %s",
                      job.company, job.title, existing.company, existing.title)
            removed += _settle(unique, idx)
        else:
            log.debug("Duplicate: kept %s - %s over %s - %s",
                      existing.company, existing.title, job.company, job.title)

    if removed:
        log.info("Removed %d duplicate job(s) of %d", removed, len(jobs))
    return unique


def analyze_duplicates(jobs: list[J]) -> dict[str, int]:
    unique = deduplicate(jobs)
    return {"total": len(jobs), "unique": len(unique), "duplicates": len(jobs) - len(unique)}
