"""
Playwright page automation.

Loads listing pages in headless Chromium through the sync Playwright API. The
sync API is bound to the thread that started it, so each worker thread gets
its own Playwright instance and browser; pages and contexts are opened per
navigation and closed before returning.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from event_harvester.configs.settings import DEFAULT_USER_AGENT
from event_harvester.ingestion.adapters.base_adapter import DEFAULT_PAGE_TIMEOUT_S, PageAutomation, PageHandle
from event_harvester.runtime.errors import NavigationError

logger = logging.getLogger(__name__)


@dataclass
class _BrowserSession:
    playwright: Any
    browser: Any
    thread_id: int


class PlaywrightPageAutomation(PageAutomation):
    """
    Headless Chromium page loader.

    Args:
        user_agent: User agent announced to target sites
        headless: Run the browser without a window
        selector_wait_s: How long to wait for the event container selector;
            a missing container is not an error (the page may list nothing)
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        headless: bool = True,
        selector_wait_s: float = 10.0,
    ):
        self.user_agent = user_agent
        self.headless = headless
        self.selector_wait_s = selector_wait_s
        self._local = threading.local()
        self._sessions: List[_BrowserSession] = []
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "PlaywrightPageAutomation":
        return cls(
            user_agent=settings.USER_AGENT,
            headless=settings.HEADLESS,
            selector_wait_s=settings.SELECTOR_WAIT_S,
        )

    def _ensure_browser(self) -> Any:
        """Ensure a browser is started for the calling thread."""
        session = getattr(self._local, "session", None)
        if session is not None:
            return session.browser

        pw = sync_playwright().start()
        browser = pw.chromium.launch(headless=self.headless)
        session = _BrowserSession(pw, browser, threading.get_ident())
        self._local.session = session
        with self._lock:
            self._sessions.append(session)
        logger.info("Browser started")
        return browser

    def navigate(self, url: str, wait_for: Optional[str] = None, timeout_s: float = DEFAULT_PAGE_TIMEOUT_S) -> PageHandle:
        browser = self._ensure_browser()
        context = browser.new_context(user_agent=self.user_agent)
        try:
            page = context.new_page()
            page.set_default_timeout(timeout_s * 1000)
            try:
                response = page.goto(url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                raise NavigationError(url, str(e)) from e

            status = response.status if response else None
            if status is not None and status >= 400:
                raise NavigationError(url, f"HTTP {status}")

            if wait_for:
                try:
                    page.wait_for_selector(wait_for, timeout=min(self.selector_wait_s, timeout_s) * 1000)
                except PlaywrightTimeoutError:
                    logger.info(f"No element matched '{wait_for}' on {url}")

            html = page.content()
            final_url = page.url
            page.close()
        finally:
            context.close()

        return PageHandle(url=url, html=html, final_url=final_url, status=status)

    def release(self) -> None:
        """Close the calling thread's browser, if it started one."""
        session = getattr(self._local, "session", None)
        if session is None:
            return
        self._local.session = None
        with self._lock:
            if session in self._sessions:
                self._sessions.remove(session)
        self._close_session(session)

    def close(self) -> None:
        """Close every browser still open and release resources."""
        self.release()
        with self._lock:
            leftover, self._sessions = self._sessions, []
        for session in leftover:
            self._close_session(session)

    @staticmethod
    def _close_session(session: _BrowserSession) -> None:
        try:
            session.browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
        try:
            session.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping playwright: {e}")
