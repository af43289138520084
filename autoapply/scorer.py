"""Score jobs against a candidate profile.

``score_job`` asks the completion service for a structured analysis and
falls back to a neutral 50 on any failure. ``quick_score`` is the
deterministic heuristic used when no AI call should be made.
"""
from __future__ import annotations

import json
import math
from concurrent.futures import ThreadPoolExecutor

from autoapply.llm import LLMClient
from autoapply.log import get_logger
from autoapply.models import RawJob, ScoredJob
from autoapply.schemas import MatchAnalysis, Profile

log = get_logger(__name__)

NEUTRAL_SCORE = 50
BATCH_SIZE = 5

MATCHER_PROMPT = """You are an expert career counselor and recruiter analyzing job-candidate matches.

Your task is to:
1. Analyze how well a candidate's profile matches a job posting
2. Provide a match score from 0-100 (be realistic, not overly optimistic)
3. Identify key strengths that make the candidate a good fit
4. Point out concerns or potential gaps
5. List missing skills the candidate should develop
6. Provide actionable recommendations

Scoring rubric:
- 90-100: Exceptional match, candidate exceeds all requirements
- 75-89: Strong match, candidate meets all key requirements with room to grow
- 60-74: Good match, candidate meets most requirements but has notable gaps
- 45-59: Fair match, candidate meets some requirements but significant skill development needed
- 30-44: Weak match, candidate lacks many required skills/experience
- 0-29: Poor match, candidate is not qualified for this role

Be honest and constructive. Focus on actionable insights that help the candidate improve their application or skills.

Return your analysis as JSON matching this schema:
{
  matchScore: number (0-100),
  strengths: string[] (3-5 key strengths),
  concerns: string[] (2-4 potential issues or gaps),
  missingSkills: string[] (specific skills to develop),
  recommendations: string[] (3-5 actionable suggestions)
}"""


def clamp_score(value: float) -> int:
    """Round half up, then clamp to [0, 100]."""
    return max(0, min(100, math.floor(value + 0.5)))


def _salary_text(job: RawJob) -> str:
    if not job.salary:
        return "Not specified"
    low = job.salary.min if job.salary.min is not None else "?"
    high = job.salary.max if job.salary.max is not None else "?"
    return f"{low} - {high} {job.salary.currency or 'USD'}"


def build_match_prompt(profile: Profile, job: RawJob) -> str:
    summary = {
        "skills": [s.model_dump(exclude_none=True) for s in profile.skills],
        "experience": [
            {
                "title": exp.role,
                "company": exp.company,
                "description": exp.description,
                "duration": f"{exp.start_date} - {exp.end_date or 'Present'}",
            }
            for exp in profile.experience
        ],
        "education": [
            {"degree": edu.degree, "field": edu.field, "institution": edu.institution}
            for edu in profile.education
        ],
        "preferences": profile.preferences.model_dump(exclude_none=True),
    }
    return f"""# Candidate Profile
{json.dumps(summary, indent=2)}

# Job Posting
**Title:** {job.title}
**Company:** {job.company}
**Location:** {job.location or 'Not specified'}
**Remote:** {'Yes' if job.remote else 'No'}
**Salary:** {_salary_text(job)}
**Type:** {job.job_type or 'Not specified'}

**Description:**
{job.description}

**Tags:** {', '.join(job.tags) or 'None'}

Analyze this match and provide:
1. Match score (0-100)
2. Key strengths (why this candidate is a good fit)
3. Concerns (potential issues or gaps)
4. Missing skills (what the candidate needs to learn)
5. Recommendations (how to improve match or approach application)"""


def quick_score(profile: Profile, job: RawJob) -> int:
    score = float(NEUTRAL_SCORE)
    prefs = profile.preferences

    if prefs.remote_preference == "remote":
        score += 10 if job.remote else -10

    if prefs.locations and job.location:
        location = job.location.lower()
        if any(loc.lower() in location for loc in prefs.locations):
            score += 10

    if prefs.salary_min and job.salary and job.salary.min:
        score += 10 if job.salary.min >= prefs.salary_min else -10

    if profile.skills:
        text = f"{job.title} {job.description}".lower()
        matching = [s for s in profile.skills if s.name.lower() in text]
        score += len(matching) / len(profile.skills) * 20

    return clamp_score(score)


class JobScorer:
    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    def analyze_match(self, profile: Profile, job: RawJob) -> MatchAnalysis:
        return self.llm.complete_json(
            MATCHER_PROMPT, build_match_prompt(profile, job), MatchAnalysis, model="balanced",
        )

    def score_job(self, profile: Profile, job: RawJob) -> ScoredJob:
        try:
            analysis = self.analyze_match(profile, job)
        except Exception as exc:
            log.error("Failed to score %s/%s: %s", job.platform, job.external_id, exc)
            return ScoredJob.from_raw(job, NEUTRAL_SCORE)
        return ScoredJob.from_raw(job, clamp_score(analysis.match_score), analysis)

    def batch_score(self, profile: Profile, jobs: list[RawJob]) -> list[ScoredJob]:
        """Score in chunks of five; members of a chunk run concurrently."""
        scored: list[ScoredJob] = []
        log.info("Scoring %d job(s) in batches of %d", len(jobs), BATCH_SIZE)
        with ThreadPoolExecutor(max_workers=BATCH_SIZE) as pool:
            for start in range(0, len(jobs), BATCH_SIZE):
                chunk = jobs[start:start + BATCH_SIZE]
                futures = [pool.submit(self.score_job, profile, job) for job in chunk]
                for job, future in zip(chunk, futures):
                    try:
                        scored.append(future.result())
                    except Exception as exc:
                        # score_job already degrades; this guards the record construction
                        log.error("Scoring failed for %s/%s: %s", job.platform, job.external_id, exc)
                        scored.append(ScoredJob.from_raw(job, NEUTRAL_SCORE))
                log.info("Scoring progress: %d/%d", start + len(chunk), len(jobs))
        return scored

    def quick_score(self, profile: Profile, job: RawJob) -> int:
        return quick_score(profile, job)
