"""
Headless Chromium driver for application forms.

Wraps Playwright's sync API with anti-detection tweaks and human-paced
typing, clicking and scrolling. Use it as a context manager so the browser
is closed on every exit path::

    with BrowserAutomation() as browser:
        page = browser.new_page()
        ...
"""
from __future__ import annotations

import random
import re
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from autoapply.log import get_logger

log = get_logger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

LAUNCH_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
]

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
window.chrome = { runtime: {} };
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

FORM_HTML_SCRIPT = """
() => {
  const form = document.querySelector('form') ||
               document.querySelector('[role="form"]') ||
               document.querySelector('main') ||
               document.body;
  return form ? form.innerHTML : '';
}
"""

SCROLL_SCRIPT = "(dy) => window.scrollBy({ top: dy, behavior: 'smooth' })"

SUCCESS_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"thank you",
        r"application received",
        r"successfully submitted",
        r"we've received",
        r"we have received",
        r"application complete",
        r"submission successful",
        r"you're all set",
        r"confirmation",
    )
]
CONFIRMATION_SELECTORS = ("h1", "h2", ".success", ".confirmation", '[role="alert"]')
DEFAULT_CONFIRMATION = "Application submitted successfully"

SELECTOR_TIMEOUT_MS = 10_000
NETWORK_IDLE_TIMEOUT_MS = 30_000


class BrowserAutomation:
    def __init__(self, *, headless: bool = True, rng: random.Random | None = None) -> None:
        self.headless = headless
        self.rng = rng or random.Random()
        self._playwright: Any = None
        self._browser: Any = None
        self.context: Any = None

    # -- lifecycle ---------------------------------------------------------

    def launch(self) -> Any:
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            self.context = self._browser.new_context(
                user_agent=self.random_user_agent(),
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
                timezone_id="America/New_York",
                java_script_enabled=True,
            )
            self.context.add_init_script(STEALTH_SCRIPT)
        except Exception:
            log.error("Failed to launch browser", exc_info=True)
            self.close()
            raise
        log.info("Browser launched")
        return self.context

    def close(self) -> None:
        if self._browser is not None:
            try:
                self._browser.close()
                log.info("Browser closed")
            except PlaywrightError as exc:
                log.error("Error closing browser: %s", exc)
            self._browser = None
            self.context = None
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as exc:
                log.debug("Error stopping Playwright: %s", exc)
            self._playwright = None

    def __enter__(self) -> "BrowserAutomation":
        self.launch()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def new_page(self) -> Any:
        if self.context is None:
            self.launch()
        return self.context.new_page()

    def random_user_agent(self) -> str:
        return self.rng.choice(USER_AGENTS)

    def _pause(self, page: Any, low_ms: float, high_ms: float) -> None:
        page.wait_for_timeout(self.rng.uniform(low_ms, high_ms))

    # -- human-paced actions -----------------------------------------------

    def human_type(self, page: Any, selector: str, text: str) -> None:
        try:
            page.click(selector, timeout=SELECTOR_TIMEOUT_MS)
            self._pause(page, 100, 300)
            for char in text:
                page.keyboard.type(char, delay=self.rng.uniform(50, 150))
        except PlaywrightError as exc:
            log.warning("Failed to type in %s: %s", selector, exc)
            raise
        log.debug("Typed %d chars into %s", len(text), selector)

    def human_click(self, page: Any, selector: str) -> None:
        try:
            element = page.wait_for_selector(selector, timeout=SELECTOR_TIMEOUT_MS)
            if element is None:
                raise PlaywrightError(f"Element not found: {selector}")
            element.scroll_into_view_if_needed()
            self._pause(page, 200, 700)
            element.click()
        except PlaywrightError as exc:
            log.warning("Failed to click %s: %s", selector, exc)
            raise

    def human_scroll(self, page: Any) -> None:
        try:
            for _ in range(self.rng.randint(2, 4)):
                page.evaluate(SCROLL_SCRIPT, self.rng.uniform(300, 700))
                self._pause(page, 500, 1500)
        except PlaywrightError:
            log.debug("Human scroll failed - continuing")

    def smart_wait(self, page: Any) -> None:
        try:
            page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
            self._pause(page, 500, 2000)
        except PlaywrightError:
            # Pages with long-polling never go idle
            log.debug("Smart wait timeout - continuing")

    # -- form helpers ------------------------------------------------------

    def upload_file(self, page: Any, selector: str, file_path: str) -> None:
        try:
            element = page.wait_for_selector(selector, timeout=SELECTOR_TIMEOUT_MS)
            if element is None:
                raise PlaywrightError(f"Element not found: {selector}")
            element.set_input_files(file_path)
        except PlaywrightError as exc:
            log.warning("Failed to upload file to %s: %s", selector, exc)
            raise
        log.debug("Uploaded %s to %s", file_path, selector)

    def select_option(self, page: Any, selector: str, value: str) -> None:
        try:
            page.select_option(selector, label=value, timeout=SELECTOR_TIMEOUT_MS)
            return
        except PlaywrightError as exc:
            first_error = exc
        try:
            page.select_option(selector, value=value, timeout=5_000)
            log.debug("Selected %r in %s by value", value, selector)
        except PlaywrightError:
            log.warning("Failed to select %r in %s: %s", value, selector, first_error)
            raise first_error

    def element_exists(self, page: Any, selector: str) -> bool:
        try:
            return page.query_selector(selector) is not None
        except PlaywrightError:
            return False

    def get_text(self, page: Any, selector: str) -> Optional[str]:
        try:
            return page.text_content(selector, timeout=5_000)
        except PlaywrightError:
            return None

    def take_screenshot(self, page: Any) -> bytes:
        try:
            return page.screenshot(full_page=True)
        except PlaywrightError as exc:
            log.error("Failed to take screenshot: %s", exc)
            raise

    def extract_form_html(self, page: Any, max_length: int = 5000) -> str:
        try:
            html = page.evaluate(FORM_HTML_SCRIPT) or ""
        except PlaywrightError as exc:
            log.error("Failed to extract form HTML: %s", exc)
            return ""
        return html[:max_length]

    def detect_success(self, page: Any) -> tuple[bool, Optional[str]]:
        """Return ``(success, confirmation_message)`` from the page text."""
        text = self.get_text(page, "body")
        if not text:
            return False, None
        if not any(p.search(text) for p in SUCCESS_PATTERNS):
            return False, None
        for selector in CONFIRMATION_SELECTORS:
            message = self.get_text(page, selector)
            if message and message.strip() and len(message) < 200:
                return True, message.strip()
        return True, DEFAULT_CONFIRMATION
