"""Playwright-backed step backend.

One browser, context and page are opened per run and kept for every step of
that run.  Playwright itself is never imported here; the engine hands over a
:class:`~stepshot.backends.availability.DriverHandle` obtained from the
availability probe.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional, Tuple

from stepshot.backends.availability import DriverHandle
from stepshot.backends.base import StepBackend
from stepshot.errors import BackendInitFailure, StepExecutionError
from stepshot.models import RunSettings, Step, StepAction

log = logging.getLogger(__name__)

# browser tag -> (playwright browser type, launch channel)
_BROWSER_TYPES: Dict[str, Tuple[str, Optional[str]]] = {
    "chrome": ("chromium", None),
    "chromium": ("chromium", None),
    "edge": ("chromium", "msedge"),
    "firefox": ("firefox", None),
    "webkit": ("webkit", None),
    "safari": ("webkit", None),
}

_CHROMIUM_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]


class PlaywrightBackend(StepBackend):
    name = "playwright"

    def __init__(
        self,
        handle: DriverHandle,
        settings: RunSettings,
        *,
        wait_timeout_ms: int = 10000,
        navigation_timeout_ms: int = 30000,
        action_timeout_ms: int = 10000,
    ) -> None:
        self.handle = handle
        self.settings = settings
        self.wait_timeout_ms = wait_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.action_timeout_ms = action_timeout_ms
        self.timeout_errors = (handle.timeout_error,)
        self.playwright: Any = None
        self.browser: Any = None
        self.context: Any = None
        self.page: Any = None

    async def open_session(self) -> None:
        browser_tag = self.settings.browser
        try:
            type_name, channel = _BROWSER_TYPES[browser_tag]
        except KeyError:
            raise BackendInitFailure(f"Unsupported browser '{browser_tag}'") from None

        log.info("Launching %s (headless: %s)", browser_tag, self.settings.headless)
        try:
            self.playwright = await self.handle.start()
            browser_type = getattr(self.playwright, type_name)
            launch_options: Dict[str, Any] = {"headless": self.settings.headless}
            if channel:
                launch_options["channel"] = channel
            if type_name == "chromium":
                launch_options["args"] = list(_CHROMIUM_ARGS)
            self.browser = await browser_type.launch(**launch_options)
            self.context = await self.browser.new_context()
            self.page = await self.context.new_page()
        except Exception as exc:
            await self.close()
            raise BackendInitFailure(str(exc) or type(exc).__name__) from exc

    async def close(self) -> None:
        """Release the browser session; errors are logged and dropped."""

        for label, resource, method in (
            ("context", self.context, "close"),
            ("browser", self.browser, "close"),
            ("playwright", self.playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as exc:
                log.debug("Closing %s failed: %s", label, exc)
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None

    async def _perform(self, index: int, step: Step) -> None:
        page = self.page
        if page is None:
            raise StepExecutionError("Browser session is not open")

        kind = step.kind
        if kind is StepAction.OPEN:
            await page.goto(step.target, timeout=self.navigation_timeout_ms)
        elif kind is StepAction.CLICK:
            await page.click(step.selector, timeout=self.action_timeout_ms)
        elif kind is StepAction.TYPE:
            locator = page.locator(step.selector)
            await locator.press_sequentially(step.text or "", timeout=self.action_timeout_ms)
        elif kind is StepAction.WAIT_FOR_SELECTOR:
            await page.wait_for_selector(step.selector, state="attached", timeout=self.wait_timeout_ms)
        else:
            raise StepExecutionError(f"Unsupported action '{step.action}'")

    async def capture_screenshot(self, index: int, step: Step) -> Optional[str]:
        if self.page is None:
            return None
        data = await self.page.screenshot(type="png")
        if not data:
            return None
        return "data:image/png;base64," + base64.b64encode(data).decode("ascii")
