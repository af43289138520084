"""
Autonomous job application agent.

Composition root: builds the store, completion client, job sources, search
engine, applicant and task runner from ``AgentSettings`` and wires them
together explicitly. Runs: search -> dedupe -> score -> index, then
auto-apply on a schedule.
"""
from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Optional

from autoapply.applicant import AutoApplicant
from autoapply.browser import BrowserAutomation
from autoapply.config import AgentSettings, ensure_dirs, load_settings
from autoapply.form_intelligence import FormIntelligence
from autoapply.llm import LLMClient
from autoapply.log import get_logger
from autoapply.mailer import SmtpMailer
from autoapply.models import ApplicationResult, Job, JobSummary, SearchResult
from autoapply.notifications import Notifier, StoreNotifier
from autoapply.scheduler import TaskRunner, run_auto_apply, run_auto_search
from autoapply.schemas import SearchQuery
from autoapply.scorer import JobScorer
from autoapply.search_engine import SearchEngine
from autoapply.sources import JobSource, get_sources
from autoapply.store import JsonStore, LocalStore
from autoapply.users import load_profile, load_user_settings

log = get_logger(__name__)

AUTO_SEARCH = "auto-search"
AUTO_APPLY = "auto-apply"


@dataclass
class Agent:
    settings: AgentSettings
    store: JsonStore
    llm: LLMClient
    sources: list[JobSource]
    engine: SearchEngine
    applicant: AutoApplicant
    notifier: Notifier
    runner: TaskRunner = field(default_factory=TaskRunner)

    # -- jobs --------------------------------------------------------------

    def default_query(self, user_id: str) -> SearchQuery:
        """First enabled saved search, else the profile's target roles."""
        settings = load_user_settings(self.store, user_id)
        if settings:
            for config in settings.search_configurations:
                if config.enabled:
                    return config.query
        profile = load_profile(self.store, user_id)
        prefs = profile.preferences
        return SearchQuery(
            keywords=prefs.target_roles or ([profile.headline] if profile.headline else []),
            remote=True if prefs.remote_preference == "remote" else None,
            min_salary=prefs.salary_min,
        )

    def search(self, user_id: str, query: Optional[SearchQuery] = None) -> SearchResult:
        return self.engine.search_jobs(user_id, query or self.default_query(user_id))

    def apply(self, user_id: str, job_id: str) -> ApplicationResult:
        return self.applicant.apply_to_job(user_id, job_id)

    def list_jobs(self, user_id: str, **filters: Any) -> list[JobSummary]:
        return self.engine.list_jobs(user_id, **filters)

    def get_job(self, user_id: str, job_id: str) -> Optional[Job]:
        return self.engine.get_job(user_id, job_id)

    # -- scheduler ---------------------------------------------------------

    def register_default_tasks(self) -> None:
        self.runner.register(
            AUTO_SEARCH,
            self.settings.auto_search_interval,
            functools.partial(run_auto_search, self.store, self.engine, self.notifier),
        )
        self.runner.register(
            AUTO_APPLY,
            self.settings.auto_apply_interval,
            functools.partial(
                run_auto_apply, self.store, self.applicant, self.notifier,
                jobs=self.engine.jobs, delay_range=self.settings.apply_delay_range,
            ),
        )

    def scheduler_status(self) -> list[dict[str, Any]]:
        return self.runner.get_status()

    def enable_task(self, name: str) -> None:
        self.runner.enable(name)

    def disable_task(self, name: str) -> None:
        self.runner.disable(name)

    def run_task(self, name: str) -> None:
        self.runner.run_now(name)

    def serve(self) -> None:
        """Start the runner and block until interrupted."""
        self.runner.start(self.settings.scheduler_tick)
        try:
            self.runner.wait()
        except KeyboardInterrupt:
            log.info("Interrupted, shutting down")
        finally:
            self.runner.stop()


def build_agent(settings: AgentSettings | None = None) -> Agent:
    settings = settings or load_settings()
    ensure_dirs(settings)

    store = LocalStore(settings.store_root)
    llm = LLMClient(
        settings.llm_api_key,
        base_url=settings.llm_base_url,
        models=settings.llm_models,
        timeout=settings.llm_timeout,
    )
    if not llm.configured:
        log.warning("No LLM API key set; scoring falls back to neutral scores and forms need manual review")

    sources = get_sources(settings, store, llm)
    engine = SearchEngine(store, sources, JobScorer(llm))
    notifier = StoreNotifier(store)
    mailer = SmtpMailer(
        settings.smtp_host, settings.smtp_port, settings.smtp_user,
        settings.smtp_password, settings.smtp_from,
    )
    applicant = AutoApplicant(
        store,
        FormIntelligence(llm),
        notifier=notifier,
        mailer=mailer,
        browser_factory=functools.partial(BrowserAutomation, headless=settings.headless),
        jobs=engine.jobs,
    )

    agent = Agent(
        settings=settings,
        store=store,
        llm=llm,
        sources=sources,
        engine=engine,
        applicant=applicant,
        notifier=notifier,
    )
    agent.register_default_tasks()
    return agent
