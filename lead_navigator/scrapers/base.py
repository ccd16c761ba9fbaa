"""Playwright session management shared by all LinkedIn scrapers.

Prerequisites
-------------
* Requires :mod:`playwright` with Chromium installed (``playwright install chromium``).
* A logged-in session is needed: either set ``session_cookie`` (the ``li_at``
  cookie) in the automation settings or point ``chrome_user_data_dir`` at a
  Chrome profile that is already signed in.
* Pacing follows the task's settings snapshot; keep the delays generous to
  stay clear of LinkedIn's automated-traffic checks.
"""
from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from playwright.sync_api import BrowserContext, Page
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..models import AutomationSettings
from ..rate_limit import DelayPolicy

LOGGER = logging.getLogger(__name__)

DEFAULT_PROFILE_DIR = ".playwright-profile"
VIEWPORT = {"width": 1440, "height": 868}
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]

CONTACT_INFO_TRIGGERS = (
    "a[data-control-name='contact_see_more']",
    "a[href*='contact-info']",
    "button[aria-label*='Contact info']",
    "button[aria-label*='Contact Info']",
    "button[data-test-id='profile-topcard-contact-info']",
)
CONTACT_INFO_SECTIONS = (
    "section.pv-contact-info__contact-type, section[data-test-id='profile-contact-info'], "
    "div.artdeco-modal__content"
)


class BrowserSession:
    """Lazily started persistent Chromium context configured from automation settings.

    One session belongs to one thread: Playwright's sync API must be driven
    from the thread that started it.
    """

    def __init__(
        self,
        settings: AutomationSettings,
        *,
        delay_policy: Optional[DelayPolicy] = None,
        playwright_factory: Callable = sync_playwright,
        profile_dir: Optional[str | Path] = None,
    ) -> None:
        self.settings = settings
        self.delay_policy = delay_policy or DelayPolicy.from_settings(settings)
        self._playwright_factory = playwright_factory
        self._profile_dir = Path(profile_dir or settings.chrome_user_data_dir or DEFAULT_PROFILE_DIR)
        self._manager = None
        self._context: Optional[BrowserContext] = None

    # ------------------------------------------------------------------
    # Lifecycle
    def context(self) -> BrowserContext:
        if self._context is not None:
            return self._context

        LOGGER.info("Launching Chromium with persistent profile %s", self._profile_dir.resolve())
        self._manager = self._playwright_factory()
        playwright = self._manager.start()
        launch_options = {
            "headless": self.settings.headless,
            "args": list(LAUNCH_ARGS),
            "viewport": dict(VIEWPORT),
        }
        if self.settings.chrome_executable_path:
            launch_options["executable_path"] = self.settings.chrome_executable_path
        self._context = playwright.chromium.launch_persistent_context(str(self._profile_dir), **launch_options)
        self._context.set_default_timeout(self.settings.page_timeout_ms)

        if self.settings.session_cookie:
            self._context.add_cookies(
                [
                    {
                        "name": "li_at",
                        "value": self.settings.session_cookie,
                        "domain": ".linkedin.com",
                        "path": "/",
                        "httpOnly": True,
                        "secure": True,
                    }
                ]
            )
        return self._context

    def close(self) -> None:
        if self._context is not None:
            with contextlib.suppress(PlaywrightError):
                self._context.close()
            self._context = None
        if self._manager is not None:
            with contextlib.suppress(PlaywrightError):
                self._manager.stop()
            self._manager = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    @contextlib.contextmanager
    def page(self) -> Iterator[Page]:
        page = self.context().new_page()
        try:
            yield page
        finally:
            with contextlib.suppress(PlaywrightError):
                page.close()

    # ------------------------------------------------------------------
    # Helpers
    def pause(self) -> None:
        self.delay_policy.wait()

    def goto(self, page: Page, url: str) -> None:
        page.goto(url, wait_until="domcontentloaded", timeout=self.settings.page_timeout_ms)

    def wait_for(self, page: Page, selector: str, *, timeout_ms: Optional[int] = None) -> bool:
        try:
            page.wait_for_selector(selector, timeout=timeout_ms or self.settings.page_timeout_ms)
            return True
        except PlaywrightTimeoutError:
            LOGGER.debug("Timed out waiting for %s", selector)
            return False

    def click_first(self, page: Page, selectors: Iterable[str]) -> bool:
        for selector in selectors:
            handle = page.query_selector(selector)
            if handle is None:
                continue
            try:
                handle.click(delay=50)
            except PlaywrightError as exc:
                LOGGER.debug("Could not click %s: %s", selector, exc)
                continue
            finally:
                handle.dispose()
            return True
        return False

    def scroll(self, page: Page, factor: float = 1.5) -> None:
        page.evaluate("(factor) => window.scrollBy(0, window.innerHeight * factor)", factor)

    def open_contact_info(self, page: Page) -> None:
        if not self.click_first(page, CONTACT_INFO_TRIGGERS):
            return
        self.pause()
        self.wait_for(page, CONTACT_INFO_SECTIONS, timeout_ms=min(self.settings.page_timeout_ms // 2, 6000))


__all__ = ["BrowserSession", "DEFAULT_PROFILE_DIR"]
