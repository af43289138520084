import json
from datetime import date

from autoapply.form_intelligence import (
    ANALYSIS_FAILED,
    FormIntelligence,
    profile_summary,
    years_of_experience,
)
from autoapply.schemas import Profile

from conftest import PROFILE_DOC, fake_llm, make_job

PROFILE = Profile.model_validate(PROFILE_DOC)


def test_years_of_experience_from_closed_role():
    assert years_of_experience(PROFILE, today=date(2026, 10, 17)) == 4


def test_years_of_experience_open_role_and_formats():
    profile = Profile.model_validate({
        "experience": [
            {"company": "A", "role": "Dev", "startDate": "Jan 2024", "endDate": "Present"},
            {"company": "B", "role": "Dev", "startDate": "2020-07-15", "endDate": "2021-01"},
            {"company": "C", "role": "Dev", "startDate": "unknown"},
        ],
    })
    # 18 months + 6 months
    assert years_of_experience(profile, today=date(2025, 7, 1)) == 2


def test_profile_summary_shape():
    summary = profile_summary(PROFILE)
    assert summary["linkedin"] == "https://linkedin.com/in/ada"
    assert summary["github"] == ""
    assert summary["currentTitle"] == "Senior Engineer"
    assert summary["experience"][0]["duration"] == "2018-01 - 2022-01"


def test_analyze_form_parses_mapping():
    reply = json.dumps({
        "fields": [
            {"selector": "#email", "type": "email", "value": "ada@example.com", "confidence": 0.95},
            {"selector": "#resume", "type": "file", "value": "", "confidence": 1},
        ],
        "customAnswers": [
            {"selector": "#why", "question": "Why Acme?", "answer": "Because.", "confidence": 0.8},
        ],
        "requiresManualReview": False,
    })
    llm = fake_llm([reply])
    analysis = FormIntelligence(llm).analyze_form("<form></form>", PROFILE, make_job())

    assert [f.selector for f in analysis.fields] == ["#email", "#resume"]
    assert analysis.custom_answers[0].answer == "Because."
    assert not analysis.requires_manual_review
    prompt = llm._client.calls[0]["messages"][1]["content"]
    assert "Ada Lovelace" in prompt
    assert "<form></form>" in prompt


def test_analyze_form_failure_means_manual_review():
    llm = fake_llm(["nope"] * 3)
    analysis = FormIntelligence(llm).analyze_form("<form/>", PROFILE, make_job())
    assert analysis.requires_manual_review
    assert analysis.warnings == [ANALYSIS_FAILED]
    assert analysis.fields == []


def test_generate_custom_answer():
    llm = fake_llm(["  I built data pipelines at Analytical Engines.  "])
    answer = FormIntelligence(llm).generate_custom_answer("Why us?", PROFILE, make_job())
    assert answer == "I built data pipelines at Analytical Engines."
    assert "Senior Engineer at Analytical Engines" in llm._client.calls[0]["messages"][1]["content"]


def test_generate_custom_answer_failure_is_empty():
    llm = fake_llm([RuntimeError("down")])
    assert FormIntelligence(llm).generate_custom_answer("Why us?", PROFILE, make_job()) == ""
