"""Decide whether the Playwright driver can be used in this environment."""

from __future__ import annotations

import importlib
import importlib.util
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Type, Union

from stepshot.errors import BackendUnavailable

log = logging.getLogger(__name__)

DRIVER_MODULE = "playwright"


@dataclass(frozen=True, slots=True)
class DriverHandle:
    """What the real backend needs from the driver library.

    ``start`` returns an awaitable resolving to a started Playwright object;
    ``timeout_error`` is the exception type the library raises on timeouts.
    """

    start: Callable[[], Awaitable[Any]]
    timeout_error: Type[BaseException]


@dataclass(frozen=True, slots=True)
class Available:
    handle: DriverHandle


@dataclass(frozen=True, slots=True)
class Unavailable:
    reason: str


BackendAvailability = Union[Available, Unavailable]


def _load_handle() -> DriverHandle:
    if importlib.util.find_spec(DRIVER_MODULE) is None:
        raise BackendUnavailable(f"{DRIVER_MODULE} is not installed")
    try:
        module = importlib.import_module(f"{DRIVER_MODULE}.async_api")
    except ImportError as exc:
        raise BackendUnavailable(f"{DRIVER_MODULE} could not be imported: {exc}") from exc

    factory = module.async_playwright

    def start() -> Awaitable[Any]:
        return factory().start()

    return DriverHandle(start=start, timeout_error=module.TimeoutError)


def probe_driver(preference: str = "auto") -> BackendAvailability:
    """Return :class:`Available` with a driver handle, or :class:`Unavailable` with the reason."""

    if preference == "simulated":
        return Unavailable("simulated backend selected by configuration")
    try:
        return Available(_load_handle())
    except BackendUnavailable as exc:
        log.info("Browser driver unavailable: %s", exc)
        return Unavailable(str(exc))
