import base64
import random

import pytest

from stepshot.backends import availability
from stepshot.backends.availability import Available, DriverHandle, Unavailable, probe_driver
from stepshot.backends.playwright_driver import PlaywrightBackend
from stepshot.backends.simulated import SIMULATED_FAILURE_MESSAGE, SimulatedBackend, placeholder_screenshot
from stepshot.errors import BackendInitFailure, MissingField, StepExecutionError, StepTimeout
from stepshot.models import RunSettings, Step


def _decode_svg(data_uri: str) -> str:
    prefix = "data:image/svg+xml;base64,"
    assert data_uri.startswith(prefix)
    return base64.b64decode(data_uri[len(prefix):]).decode("utf-8")


class FakeTimeout(Exception):
    pass


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self.page = page
        self.selector = selector

    async def press_sequentially(self, text: str, timeout: int | None = None) -> None:
        self.page.calls.append(("type", self.selector, text, timeout))


class FakePage:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.missing_selectors: set[str] = set()
        self.screenshot_error: Exception | None = None

    async def goto(self, url: str, timeout: int | None = None) -> None:
        self.calls.append(("goto", url, timeout))

    async def click(self, selector: str, timeout: int | None = None) -> None:
        if selector in self.missing_selectors:
            raise RuntimeError(f"no element matches {selector}")
        self.calls.append(("click", selector, timeout))

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: int | None = None) -> None:
        self.calls.append(("wait_for_selector", selector, state, timeout))
        if selector in self.missing_selectors:
            raise FakeTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def screenshot(self, type: str = "png") -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return b"png-bytes"


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.context = FakeContext(page)
        self.closed = False

    async def new_context(self) -> FakeContext:
        return self.context

    async def close(self) -> None:
        self.closed = True
        raise RuntimeError("browser already gone")


class FakeBrowserType:
    def __init__(self, page: FakePage, fail: bool = False) -> None:
        self.page = page
        self.fail = fail
        self.launches: list[dict] = []
        self.browser: FakeBrowser | None = None

    async def launch(self, **options) -> FakeBrowser:
        self.launches.append(options)
        if self.fail:
            raise RuntimeError("Executable doesn't exist")
        self.browser = FakeBrowser(self.page)
        return self.browser


class FakePlaywright:
    def __init__(self, page: FakePage, fail_launch: bool = False) -> None:
        self.chromium = FakeBrowserType(page, fail_launch)
        self.firefox = FakeBrowserType(page, fail_launch)
        self.webkit = FakeBrowserType(page, fail_launch)
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


def _handle(playwright: FakePlaywright) -> DriverHandle:
    async def start():
        return playwright

    return DriverHandle(start=start, timeout_error=FakeTimeout)


async def _open_driver(settings: RunSettings | None = None, **kwargs):
    page = FakePage()
    playwright = FakePlaywright(page)
    backend = PlaywrightBackend(_handle(playwright), settings or RunSettings(), **kwargs)
    await backend.open_session()
    return backend, page, playwright


async def _no_sleep(seconds: float) -> None:
    return None


# ----------------------------------------------------------------------
# simulated backend
# ----------------------------------------------------------------------


def test_placeholder_screenshot_names_step_and_action():
    svg = _decode_svg(placeholder_screenshot(3, "waitForSelector"))
    assert "Step 3: waitForSelector" in svg
    assert "Simulated Screenshot" in svg


def test_simulated_delay_stays_in_range():
    backend = SimulatedBackend(rng=random.Random(7))
    delays = [backend.next_delay_ms() for _ in range(500)]
    assert min(delays) >= 350
    assert max(delays) < 1250


@pytest.mark.asyncio
async def test_simulated_success_sleeps_and_returns_placeholder():
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    backend = SimulatedBackend(min_delay_ms=400, max_delay_ms=400, sleep=fake_sleep)

    outcome = await backend.execute(1, Step(action="click", selector="#x"))

    assert outcome.ok is True
    assert outcome.error is None
    assert slept == [0.4]
    assert "Step 2: click" in _decode_svg(outcome.screenshot)


@pytest.mark.asyncio
async def test_simulated_forced_failure():
    backend = SimulatedBackend(sleep=_no_sleep)

    outcome = await backend.execute(0, Step(action="type", selector="#u", shouldFail=True))

    assert outcome.ok is False
    assert isinstance(outcome.error, StepExecutionError)
    assert outcome.message == SIMULATED_FAILURE_MESSAGE
    assert outcome.screenshot is None


@pytest.mark.asyncio
async def test_missing_selector_fails_before_backend_work():
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    backend = SimulatedBackend(sleep=fake_sleep)

    outcome = await backend.execute(0, Step(action="click"))

    assert outcome.ok is False
    assert isinstance(outcome.error, MissingField)
    assert outcome.error.field == "selector"
    assert "selector" in outcome.message
    assert slept == []


@pytest.mark.asyncio
async def test_missing_target_for_open():
    outcome = await SimulatedBackend(sleep=_no_sleep).execute(0, Step(action="open"))
    assert outcome.message == "Missing target for open"


# ----------------------------------------------------------------------
# playwright backend against fake driver objects
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_playwright_session_launches_configured_browser():
    backend, page, playwright = await _open_driver(RunSettings(browser="chrome", headless=False))

    launch = playwright.chromium.launches[0]
    assert launch["headless"] is False
    assert "--no-sandbox" in launch["args"]
    assert backend.page is page


@pytest.mark.asyncio
async def test_playwright_firefox_has_no_chromium_args():
    backend, page, playwright = await _open_driver(RunSettings(browser="firefox"))
    assert playwright.firefox.launches == [{"headless": True}]
    assert playwright.chromium.launches == []


@pytest.mark.asyncio
async def test_playwright_executes_actions_and_captures_png():
    backend, page, _ = await _open_driver(navigation_timeout_ms=111, action_timeout_ms=222, wait_timeout_ms=333)

    results = [
        await backend.execute(0, Step(action="open", target="https://example.com")),
        await backend.execute(1, Step(action="click", selector="#go")),
        await backend.execute(2, Step(action="type", selector="#q")),
        await backend.execute(3, Step(action="waitForSelector", selector="#done")),
    ]

    assert all(result.ok for result in results)
    assert page.calls == [
        ("goto", "https://example.com", 111),
        ("click", "#go", 222),
        ("type", "#q", "", 222),
        ("wait_for_selector", "#done", "attached", 333),
    ]
    expected = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode("ascii")
    assert results[0].screenshot == expected


@pytest.mark.asyncio
async def test_playwright_wait_timeout_is_typed():
    backend, page, _ = await _open_driver()
    page.missing_selectors.add("#never")

    outcome = await backend.execute(0, Step(action="waitForSelector", selector="#never"))

    assert outcome.ok is False
    assert isinstance(outcome.error, StepTimeout)
    assert "#never" in outcome.message


@pytest.mark.asyncio
async def test_playwright_other_errors_are_step_execution_errors():
    backend, page, _ = await _open_driver()
    page.missing_selectors.add("#gone")

    outcome = await backend.execute(0, Step(action="click", selector="#gone"))

    assert isinstance(outcome.error, StepExecutionError)
    assert outcome.message == "no element matches #gone"


@pytest.mark.asyncio
async def test_playwright_screenshot_failure_does_not_fail_step():
    backend, page, _ = await _open_driver()
    page.screenshot_error = RuntimeError("capture failed")

    outcome = await backend.execute(0, Step(action="click", selector="#ok"))

    assert outcome.ok is True
    assert outcome.screenshot is None


@pytest.mark.asyncio
async def test_playwright_unsupported_browser_is_init_failure():
    page = FakePage()
    playwright = FakePlaywright(page)
    backend = PlaywrightBackend(_handle(playwright), RunSettings(browser="netscape"))

    with pytest.raises(BackendInitFailure, match="Unsupported browser 'netscape'"):
        await backend.open_session()


@pytest.mark.asyncio
async def test_playwright_launch_failure_releases_and_raises_init_failure():
    page = FakePage()
    playwright = FakePlaywright(page, fail_launch=True)
    backend = PlaywrightBackend(_handle(playwright), RunSettings())

    with pytest.raises(BackendInitFailure, match="Executable doesn't exist"):
        await backend.open_session()

    assert playwright.stopped is True
    assert backend.playwright is None


@pytest.mark.asyncio
async def test_playwright_close_swallows_errors():
    backend, page, playwright = await _open_driver()
    browser = playwright.chromium.browser

    await backend.close()

    assert browser.context.closed is True
    assert browser.closed is True
    assert playwright.stopped is True
    assert backend.page is None


# ----------------------------------------------------------------------
# availability probe
# ----------------------------------------------------------------------


def test_probe_honours_simulated_preference():
    result = probe_driver("simulated")
    assert isinstance(result, Unavailable)
    assert "simulated" in result.reason


def test_probe_reports_missing_driver(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(availability.importlib.util, "find_spec", lambda name: None)

    result = probe_driver("auto")

    assert isinstance(result, Unavailable)
    assert "not installed" in result.reason


def test_probe_reports_import_failure(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(availability.importlib.util, "find_spec", lambda name: object())

    def broken_import(name: str):
        raise ImportError("libfoo missing")

    monkeypatch.setattr(availability.importlib, "import_module", broken_import)

    result = probe_driver("auto")

    assert isinstance(result, Unavailable)
    assert "libfoo missing" in result.reason


def test_probe_builds_handle_from_driver_module(monkeypatch: pytest.MonkeyPatch):
    class FakeModule:
        class TimeoutError(Exception):
            pass

        @staticmethod
        def async_playwright():
            raise AssertionError("not started during probing")

    monkeypatch.setattr(availability.importlib.util, "find_spec", lambda name: object())
    monkeypatch.setattr(availability.importlib, "import_module", lambda name: FakeModule)

    result = probe_driver("playwright")

    assert isinstance(result, Available)
    assert result.handle.timeout_error is FakeModule.TimeoutError
