"""Step backends: the Playwright driver and the deterministic simulator."""

from .availability import Available, BackendAvailability, DriverHandle, Unavailable, probe_driver
from .base import StepBackend, StepOutcome
from .playwright_driver import PlaywrightBackend
from .simulated import SIMULATED_FAILURE_MESSAGE, SimulatedBackend, placeholder_screenshot

__all__ = [
    "Available",
    "BackendAvailability",
    "DriverHandle",
    "PlaywrightBackend",
    "SIMULATED_FAILURE_MESSAGE",
    "SimulatedBackend",
    "StepBackend",
    "StepOutcome",
    "Unavailable",
    "placeholder_screenshot",
    "probe_driver",
]
