"""Validated shapes for documents we read (profile, settings) and AI responses."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Schema(BaseModel):
    """Accepts camelCase (UI documents, AI output) and snake_case alike."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Profile and settings (owned by the profile/settings services, read here)
# ---------------------------------------------------------------------------

class Skill(Schema):
    name: str = Field(min_length=1)
    proficiency: Optional[str] = None
    years: Optional[float] = Field(default=None, ge=0)


class Experience(Schema):
    id: Optional[str] = None
    company: str = Field(min_length=1)
    role: str = Field(min_length=1)
    start_date: str = ""
    end_date: Optional[str] = None
    current: bool = False
    description: Optional[str] = None
    bullets: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)


class Education(Schema):
    id: Optional[str] = None
    institution: str = Field(min_length=1)
    degree: str = Field(min_length=1)
    field: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class SocialLink(Schema):
    platform: str
    url: str


class Preferences(Schema):
    target_roles: list[str] = Field(default_factory=list)
    target_companies: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    remote_preference: Optional[Literal["remote", "hybrid", "onsite", "flexible"]] = None
    salary_min: Optional[float] = Field(default=None, ge=0)
    salary_max: Optional[float] = Field(default=None, ge=0)
    industries: list[str] = Field(default_factory=list)
    deal_breakers: list[str] = Field(default_factory=list)


class Profile(Schema):
    id: str = ""
    email: str = ""
    name: str = ""
    phone: Optional[str] = None
    location: Optional[str] = None
    headline: Optional[str] = None
    summary: Optional[str] = None
    skills: list[Skill] = Field(default_factory=list)
    experience: list[Experience] = Field(default_factory=list)
    education: list[Education] = Field(default_factory=list)
    social_links: list[SocialLink] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)

    def link(self, platform: str) -> str:
        for link in self.social_links:
            if link.platform.lower() == platform:
                return link.url
        return ""


class SearchQuery(Schema):
    keywords: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    remote: Optional[bool] = None
    min_salary: Optional[float] = None
    max_salary: Optional[float] = None
    job_types: list[str] = Field(default_factory=list)
    exclude_companies: list[str] = Field(default_factory=list)


class SearchConfiguration(Schema):
    id: str
    query: SearchQuery = Field(default_factory=SearchQuery)
    frequency: Literal["hourly", "daily", "weekly"] = "daily"
    last_run_at: Optional[datetime] = None
    enabled: bool = True


class AutoApplyRules(Schema):
    enabled: bool = False
    min_match_score: int = Field(default=70, ge=0, le=100)
    max_applications_per_day: int = Field(default=10, ge=0)


class UserSettings(Schema):
    user_id: Optional[str] = None
    auto_search_enabled: bool = False
    search_configurations: list[SearchConfiguration] = Field(default_factory=list)
    auto_apply_rules: Optional[AutoApplyRules] = None
    # Set by the mail integration once the user has authorised sending
    mail_connected: bool = False
    google_refresh_token: Optional[str] = None

    @property
    def mail_channel_connected(self) -> bool:
        return self.mail_connected or bool(self.google_refresh_token)


# ---------------------------------------------------------------------------
# AI response schemas
# ---------------------------------------------------------------------------

class MatchAnalysis(Schema):
    match_score: float = Field(ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ExtractedSalary(Schema):
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


class ExtractedJob(Schema):
    title: str
    company: str
    location: Optional[str] = None
    remote: bool = False
    description: str = ""
    url: Optional[str] = None
    salary: Optional[ExtractedSalary] = None
    job_type: Optional[str] = None


class FormField(Schema):
    selector: str
    type: str = "text"
    value: str = ""
    confidence: float = Field(default=0.0, ge=0, le=1)
    label: Optional[str] = None


class CustomAnswer(Schema):
    selector: str
    question: str = ""
    answer: str
    confidence: float = Field(default=0.0, ge=0, le=1)


class FormAnalysis(Schema):
    fields: list[FormField] = Field(default_factory=list)
    custom_answers: list[CustomAnswer] = Field(default_factory=list)
    requires_manual_review: bool = False
    missing_required_data: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def manual_review(cls, warning: str) -> "FormAnalysis":
        return cls(requires_manual_review=True, warnings=[warning])
