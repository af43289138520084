"""
Autonomous application to a single job.

Picks the channel (email, the employer's web form, or a manual hand-off),
submits, and records the attempt. ``apply_to_job`` always returns an
``ApplicationResult``; nothing it does is allowed to raise into the caller.
"""
from __future__ import annotations

import re
import tempfile
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from autoapply.browser import BrowserAutomation
from autoapply.errors import AppError, NotFoundError
from autoapply.form_intelligence import FormIntelligence
from autoapply.log import get_logger
from autoapply.mailer import SmtpMailer
from autoapply.models import Application, ApplicationResult, FillReport, Job, utcnow
from autoapply.notifications import Notification, Notifier, notify_safely
from autoapply.schemas import FormAnalysis, Profile
from autoapply.search_engine import JobRepository
from autoapply.store import JsonStore, user_key
from autoapply.users import list_documents, load_profile, load_user_settings

log = get_logger(__name__)

DEFAULT_MAX_PER_DAY = 10

APPLY_SELECTORS: tuple[str, ...] = (
    'button:has-text("Apply")',
    'a:has-text("Apply")',
    'button:has-text("Submit Application")',
    '[data-testid*="apply"]',
    '[class*="apply"]',
    'button[type="submit"]',
)
SUBMIT_SELECTORS: tuple[str, ...] = (
    'button[type="submit"]',
    'button:has-text("Submit")',
    'button:has-text("Apply")',
    'button:has-text("Send")',
    'input[type="submit"]',
    '[data-testid*="submit"]',
)
TEXT_FIELD_TYPES = frozenset({"text", "email", "tel", "number", "textarea", "url"})
ATS_MARKERS = ("greenhouse.io", "lever.co", "workday.com", "careers", "jobs", "apply")

_EMAIL_APPLY_RES = (
    re.compile(r"send\s+(your\s+)?resume\s+to\s+[\w@.]+", re.IGNORECASE),
    re.compile(r"email.*(resume|cv|application)", re.IGNORECASE),
)
_EMAIL_ADDRESS_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w+")

QUOTA_REACHED = "Daily application limit reached. Adjust your settings to apply to more jobs."
MANUAL_REQUIRED = "This job requires manual application. LinkedIn Easy Apply is not yet supported."
SUBMIT_WAIT_MS = 3000


def detect_method(job: Job) -> str:
    url = (job.url or "").lower()
    description = job.description or ""

    if any(p.search(description) for p in _EMAIL_APPLY_RES):
        return "email"
    # LinkedIn needs a logged-in session
    if "linkedin.com" in url:
        return "manual_required"
    if any(marker in url for marker in ATS_MARKERS):
        return "direct_website"
    if job.url:
        return "direct_website"
    return "manual_required"


def extract_email(text: str) -> Optional[str]:
    match = _EMAIL_ADDRESS_RE.search(text or "")
    return match.group(0) if match else None


def applications_index_key(user_id: str) -> str:
    return user_key(user_id, "applications", "index.json")


def count_applications_today(store: JsonStore, user_id: str, today: datetime | None = None) -> int:
    """Entries in the applications index whose ``applied_at`` falls on today's date."""
    day = (today or utcnow()).date().isoformat()
    index = store.get_json(applications_index_key(user_id)) or {}
    return sum(
        1 for a in index.get("applications", [])
        if (a.get("applied_at") or "").startswith(day)
    )


def compose_email(job: Job, profile: Profile) -> tuple[str, str]:
    subject = f"Application: {job.title} - {profile.name}"
    intro = profile.summary or "I believe my skills and experience make me a strong candidate for this role."
    body = f"""Dear Hiring Manager,

I am writing to express my interest in the {job.title} position at {job.company}.

{intro}

Please find my resume attached. I look forward to discussing how I can contribute to your team.

Best regards,
{profile.name}
{profile.email}
{profile.phone or ''}"""
    return subject, body.rstrip() + "\n"


class AutoApplicant:
    def __init__(
        self,
        store: JsonStore,
        forms: FormIntelligence,
        *,
        notifier: Notifier | None = None,
        mailer: SmtpMailer | None = None,
        browser_factory: Callable[[], BrowserAutomation] = BrowserAutomation,
        jobs: JobRepository | None = None,
        temp_root: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.forms = forms
        self.notifier = notifier
        self.mailer = mailer
        self.browser_factory = browser_factory
        self.jobs = jobs or JobRepository(store)
        self.temp_root = temp_root
        self.clock = clock

    # -- quota and documents -----------------------------------------------

    def max_per_day(self, user_id: str) -> int:
        try:
            settings = load_user_settings(self.store, user_id)
        except (AppError, ValueError) as exc:
            log.warning("Unreadable settings for %s, using default quota: %s", user_id, exc)
            return DEFAULT_MAX_PER_DAY
        if settings and settings.auto_apply_rules:
            return settings.auto_apply_rules.max_applications_per_day
        return DEFAULT_MAX_PER_DAY

    def can_apply(self, user_id: str) -> bool:
        return count_applications_today(self.store, user_id, self.clock()) < self.max_per_day(user_id)

    def select_documents(self, user_id: str, job_id: str) -> tuple[Optional[dict], Optional[dict]]:
        """Job-specific CV and cover letter when both exist, else the latest CV."""
        docs = list_documents(self.store, user_id)
        cv = next((d for d in docs if d.get("type") == "cv" and d.get("jobId") == job_id), None)
        letter = next((d for d in docs if d.get("type") == "cover_letter" and d.get("jobId") == job_id), None)
        if cv and letter:
            log.info("Using existing documents for job %s", job_id)
            return cv, letter
        cvs = sorted(
            (d for d in docs if d.get("type") == "cv"),
            key=lambda d: str(d.get("createdAt") or ""),
            reverse=True,
        )
        return (cvs[0] if cvs else None), letter

    def _download(self, doc: Optional[dict], workdir: Path) -> Optional[Path]:
        if not doc:
            return None
        key = doc.get("storageKey") or doc.get("s3Key")
        if not key:
            log.warning("Document %s has no storage key", doc.get("id"))
            return None
        suffix = Path(key).suffix or ".pdf"
        path = workdir / f"{doc.get('type', 'doc')}-{doc.get('id', uuid.uuid4().hex)}{suffix}"
        path.write_bytes(self.store.download_file(key))
        log.debug("Document %s downloaded to %s", doc.get("id"), path)
        return path

    # -- entry point -------------------------------------------------------

    def apply_to_job(self, user_id: str, job_id: str, *, notify: bool = True) -> ApplicationResult:
        try:
            profile = load_profile(self.store, user_id)
            job = self.jobs.get_job(user_id, job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")

            log.info("Auto-apply %s: %s @ %s", user_id, job.title, job.company)
            if not self.can_apply(user_id):
                log.info("Daily quota reached for %s", user_id)
                return ApplicationResult(success=False, method="manual_required", error=QUOTA_REACHED)

            cv_doc, letter_doc = self.select_documents(user_id, job_id)
            app_id = uuid.uuid4().hex
            report = FillReport()
            with tempfile.TemporaryDirectory(prefix="autoapply-", dir=self.temp_root) as tmp:
                workdir = Path(tmp)
                cv_path = self._download(cv_doc, workdir)
                letter_path = self._download(letter_doc, workdir)

                method = detect_method(job)
                log.info("Application method for %s: %s", job_id, method)
                if method == "email":
                    result = self.apply_via_email(user_id, job, profile, cv_path, letter_path)
                elif method == "direct_website":
                    result = self.apply_via_website(user_id, job, profile, cv_path, report)
                else:
                    result = ApplicationResult(success=False, method="manual_required", error=MANUAL_REQUIRED)

            result.application_id = app_id
            result.fields_filled = report.filled
            result.total_fields = report.total
            self._record(user_id, job, result, cv_doc, letter_doc)
            if notify:
                self._notify(user_id, job, result)
            log.info("Auto-apply %s finished: success=%s method=%s", app_id, result.success, result.method)
            return result
        except Exception as exc:
            log.error("Auto-apply failed for %s/%s: %s", user_id, job_id, exc, exc_info=True)
            return ApplicationResult(
                success=False, method="manual_required", error=str(exc) or "Unknown error occurred",
            )

    # -- channels ----------------------------------------------------------

    def apply_via_email(
        self,
        user_id: str,
        job: Job,
        profile: Profile,
        cv_path: Optional[Path],
        letter_path: Optional[Path],
    ) -> ApplicationResult:
        recipient = extract_email(job.description)
        if not recipient:
            return ApplicationResult(success=False, method="email", error="No email address found for application")

        settings = load_user_settings(self.store, user_id)
        if not (settings and settings.mail_channel_connected) or not (self.mailer and self.mailer.configured):
            return ApplicationResult(
                success=False,
                method="email",
                error="Mail not connected. Please connect your email account to apply via email.",
            )

        subject, body = compose_email(job, profile)
        attachments = [p for p in (cv_path, letter_path) if p is not None]
        try:
            self.mailer.send(recipient, subject, body, reply_to=profile.email, attachments=attachments)
        except AppError as exc:
            log.error("Email application to %s failed: %s", recipient, exc)
            return ApplicationResult(success=False, method="email", error=exc.message)
        return ApplicationResult(success=True, method="email", confirmation_message=f"Application sent to {recipient}")

    def apply_via_website(
        self,
        user_id: str,
        job: Job,
        profile: Profile,
        cv_path: Optional[Path],
        report: FillReport,
    ) -> ApplicationResult:
        with self.browser_factory() as browser:
            page = browser.new_page()
            try:
                return self._drive_form(browser, page, user_id, job, profile, cv_path, report)
            except Exception as exc:
                log.error("Website application failed for %s: %s", job.job_id, exc)
                key = None
                try:
                    key = self._screenshot(browser, page, user_id, "-error")
                except Exception as shot_exc:
                    log.warning("Diagnostic screenshot failed: %s", shot_exc)
                return ApplicationResult(
                    success=False,
                    method="direct_website",
                    screenshot_key=key,
                    error=str(exc) or "Browser automation failed",
                )

    def _drive_form(
        self,
        browser: BrowserAutomation,
        page: Any,
        user_id: str,
        job: Job,
        profile: Profile,
        cv_path: Optional[Path],
        report: FillReport,
    ) -> ApplicationResult:
        if not job.url:
            raise ValueError("Job URL is required for website application")

        log.info("Navigating to %s", job.url)
        page.goto(job.url, wait_until="domcontentloaded", timeout=30_000)
        browser.smart_wait(page)
        browser.human_scroll(page)

        if self._click_first(browser, page, APPLY_SELECTORS) is None:
            log.warning("Apply button not found on %s", job.url)

        html = browser.extract_form_html(page)
        if not html:
            raise ValueError("Could not extract form from page")

        analysis = self.forms.analyze_form(html, profile, job)
        if analysis.requires_manual_review:
            key = self._screenshot(browser, page, user_id, "-review-required")
            return ApplicationResult(
                success=False,
                method="direct_website",
                screenshot_key=key,
                error="Form requires manual review. " + "; ".join(analysis.warnings),
            )

        self.fill_form(browser, page, analysis, cv_path, report)
        log.info("Form filled: %d/%d field(s)", report.filled, report.total)

        if self._click_first(browser, page, SUBMIT_SELECTORS) is None:
            key = self._screenshot(browser, page, user_id, "-no-submit")
            return ApplicationResult(
                success=False,
                method="direct_website",
                screenshot_key=key,
                error="Could not find submit button. Form filled but not submitted.",
            )

        page.wait_for_timeout(SUBMIT_WAIT_MS)
        key = self._screenshot(browser, page, user_id, "")
        success, message = browser.detect_success(page)
        return ApplicationResult(
            success=success,
            method="direct_website",
            screenshot_key=key,
            confirmation_message=message or (
                "Application submitted successfully" if success else "Submitted but confirmation unclear"
            ),
            error=None if success else "Could not verify submission. Please check screenshot.",
        )

    def fill_form(
        self,
        browser: BrowserAutomation,
        page: Any,
        analysis: FormAnalysis,
        cv_path: Optional[Path],
        report: FillReport | None = None,
    ) -> FillReport:
        """Fill every mapped field; a failing field is recorded and skipped."""
        report = report if report is not None else FillReport()

        for field in analysis.fields:
            kind = field.type.lower()
            try:
                if kind == "file":
                    if cv_path is None:
                        report.record(field.selector, kind, "no CV available")
                        continue
                    browser.upload_file(page, field.selector, str(cv_path))
                elif kind == "select":
                    browser.select_option(page, field.selector, field.value)
                elif kind in ("checkbox", "radio"):
                    page.check(field.selector)
                elif kind in TEXT_FIELD_TYPES:
                    browser.human_type(page, field.selector, field.value)
                else:
                    report.record(field.selector, kind, f"unsupported field type {kind!r}")
                    continue
            except Exception as exc:
                log.warning("Failed to fill %s - continuing: %s", field.selector, exc)
                report.record(field.selector, kind, str(exc))
                continue
            report.record(field.selector, kind)

        for answer in analysis.custom_answers:
            try:
                browser.human_type(page, answer.selector, answer.answer)
            except Exception as exc:
                log.warning("Failed to fill custom answer %s: %s", answer.selector, exc)
                report.record(answer.selector, "custom_answer", str(exc))
                continue
            report.record(answer.selector, "custom_answer")
        return report

    def _click_first(self, browser: BrowserAutomation, page: Any, selectors: tuple[str, ...]) -> Optional[str]:
        for selector in selectors:
            if browser.element_exists(page, selector):
                browser.human_click(page, selector)
                browser.smart_wait(page)
                log.info("Clicked %s", selector)
                return selector
        return None

    def _screenshot(self, browser: BrowserAutomation, page: Any, user_id: str, suffix: str) -> str:
        data = browser.take_screenshot(page)
        key = user_key(user_id, "applications", "screenshots", f"{uuid.uuid4().hex}{suffix}.png")
        self.store.upload_file(key, data, "image/png")
        return key

    # -- bookkeeping -------------------------------------------------------

    def _record(
        self,
        user_id: str,
        job: Job,
        result: ApplicationResult,
        cv_doc: Optional[dict],
        letter_doc: Optional[dict],
    ) -> Application:
        application = Application(
            id=result.application_id,
            job_id=job.job_id,
            user_id=user_id,
            status="submitted" if result.success else "failed",
            method=result.method,
            applied_at=self.clock() if result.success else None,
            cv_document_id=cv_doc.get("id") if cv_doc else None,
            cover_letter_document_id=letter_doc.get("id") if letter_doc else None,
            error=result.error,
            screenshot_key=result.screenshot_key,
            confirmation_message=result.confirmation_message,
            metadata={"fields_filled": result.fields_filled, "total_fields": result.total_fields},
        )
        self.store.put_json(user_key(user_id, "applications", f"{application.id}.json"), application.to_dict())

        entry = application.index_entry()

        def _append(current: Optional[dict]) -> dict:
            return {"applications": [*(current or {}).get("applications", []), entry]}

        self.store.update_json(applications_index_key(user_id), _append)
        self.jobs.attach_application(user_id, job.job_id, application.id, applied=result.success)
        return application

    def _notify(self, user_id: str, job: Job, result: ApplicationResult) -> None:
        if result.success:
            notification = Notification(
                type="application_sent",
                title=f"Applied: {job.company}",
                message=f"Successfully applied for {job.title} at {job.company}",
                priority="medium",
                data={"jobId": job.job_id, "applicationId": result.application_id},
            )
        else:
            notification = Notification(
                type="application_failed",
                title=f"Failed: {job.company}",
                message=f"Could not auto-apply for {job.title}. {result.error or ''}".strip(),
                priority="high",
                data={"jobId": job.job_id, "applicationId": result.application_id},
            )
        notify_safely(self.notifier, user_id, notification)
