"""Map an application form's markup to profile values with the completion service."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Optional

from autoapply.llm import LLMClient
from autoapply.log import get_logger
from autoapply.models import RawJob
from autoapply.schemas import FormAnalysis, Profile

log = get_logger(__name__)

ANALYSIS_FAILED = "AI form analysis failed - manual application required"
JOB_EXCERPT_CHARS = 500

FORM_PROMPT = """You are analyzing a job application form. Given the HTML and a candidate's profile, identify all form fields and map them to the correct profile data.

For standard fields (name, email, phone, etc.), map them to profile values.
For custom questions (like "Why do you want to work here?" or "Tell us about yourself"), generate thoughtful, specific answers based on the job and profile.

Return a JSON object with this structure:
{
  "fields": [
    {
      "selector": "CSS selector (prefer id, then name, then more specific selectors)",
      "type": "text|email|tel|number|select|textarea|file|checkbox|radio",
      "value": "the value to fill in",
      "confidence": 0.0-1.0,
      "label": "field label if identifiable"
    }
  ],
  "customAnswers": [
    {
      "selector": "CSS selector for textarea or text input",
      "question": "the question being asked",
      "answer": "thoughtful, specific answer (2-4 sentences, no generic fluff)",
      "confidence": 0.0-1.0
    }
  ],
  "requiresManualReview": false,
  "missingRequiredData": ["list of any required data not in profile"],
  "warnings": ["any concerns or ambiguities"]
}

IMPORTANT:
- For selectors, prefer: #id > [name="x"] > more specific CSS
- For select/dropdown fields, provide the exact option text to select
- For file inputs, just note type="file" - file upload is handled separately
- For "years of experience" questions, calculate from work history
- For salary questions, you can leave blank or use "Competitive" if no data available
- For cover letter / "why this company" questions, mention specific things about the company and role
- Confidence below 0.7 means the field might need manual review
- Set requiresManualReview=true if critical fields are ambiguous or missing data"""

ANSWER_PROMPT = """You are helping a job candidate answer application questions. Generate thoughtful, specific answers that highlight relevant experience and genuine interest.

Rules:
- Be specific and concrete, not generic
- Reference actual experience from the candidate's background
- Show genuine interest in the company/role
- Keep answers concise (2-4 sentences for short answers, 1-2 paragraphs for essays)
- Avoid clichés like "I'm passionate about..." or "I'm a team player"
- Focus on value the candidate can bring"""

_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m", "%Y/%m", "%m/%Y", "%b %Y", "%B %Y", "%Y")


def _parse_month(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    text = value.strip()
    if text.lower() in ("present", "current", "now"):
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def years_of_experience(profile: Profile, today: date | None = None) -> int:
    """Whole months across all roles, divided by twelve and rounded."""
    today = today or date.today()
    months = 0
    for exp in profile.experience:
        start = _parse_month(exp.start_date)
        if start is None:
            continue
        end = _parse_month(exp.end_date) or today
        months += max(0, (end.year - start.year) * 12 + (end.month - start.month))
    return int(months / 12 + 0.5)


def profile_summary(profile: Profile) -> dict:
    current = profile.experience[0] if profile.experience else None
    return {
        "name": profile.name,
        "email": profile.email,
        "phone": profile.phone or "",
        "location": profile.location or "",
        "linkedin": profile.link("linkedin"),
        "github": profile.link("github"),
        "website": profile.link("website"),
        "headline": profile.headline or "",
        "summary": profile.summary or "",
        "skills": [s.model_dump(exclude_none=True) for s in profile.skills],
        "experience": [
            {
                "title": exp.role,
                "company": exp.company,
                "duration": f"{exp.start_date} - {exp.end_date or 'Present'}",
                "description": exp.description,
            }
            for exp in profile.experience
        ],
        "education": [
            {"degree": edu.degree, "school": edu.institution, "year": edu.end_date}
            for edu in profile.education
        ],
        "yearsOfExperience": years_of_experience(profile),
        "currentTitle": current.role if current else "",
        "currentCompany": current.company if current else "",
    }


class FormIntelligence:
    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    def analyze_form(self, html: str, profile: Profile, job: RawJob) -> FormAnalysis:
        """Never raises; a failed analysis comes back flagged for manual review."""
        user = f"""Job Application Form Analysis

JOB DETAILS:
Title: {job.title}
Company: {job.company}
Description: {job.description[:JOB_EXCERPT_CHARS]}...

CANDIDATE PROFILE:
{json.dumps(profile_summary(profile), indent=2)}

FORM HTML (truncated):
{html}

Analyze the form and provide field mappings."""
        try:
            result = self.llm.complete_json(FORM_PROMPT, user, FormAnalysis, model="balanced")
        except Exception as exc:
            log.error("Form analysis failed: %s", exc)
            return FormAnalysis.manual_review(ANALYSIS_FAILED)

        log.info(
            "Form analysis: %d field(s), %d custom answer(s), manual_review=%s",
            len(result.fields), len(result.custom_answers), result.requires_manual_review,
        )
        return result

    def generate_custom_answer(self, question: str, profile: Profile, job: RawJob) -> str:
        current = profile.experience[0] if profile.experience else None
        notable = ", ".join(f"{e.role} at {e.company}" for e in profile.experience[:2])
        user = f"""Question: {question}

Job: {job.title} at {job.company}
Job Description: {job.description[:300]}...

Candidate Background:
- Current Role: {current.role if current else 'N/A'} at {current.company if current else 'N/A'}
- Summary: {profile.summary or 'N/A'}
- Key Skills: {', '.join(s.name for s in profile.skills[:10]) or 'N/A'}
- Notable Experience: {notable or 'N/A'}

Generate a strong answer to this question."""
        try:
            return self.llm.complete(ANSWER_PROMPT, user, model="balanced").strip()
        except Exception as exc:
            log.error("Failed to generate answer for %r: %s", question[:80], exc)
            return ""
