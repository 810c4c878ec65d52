"""Deterministic stand-in backend used when no browser driver can be used.

Steps take a random 350-1250 ms, succeed unless the step carries
``shouldFail`` and produce an SVG placeholder screenshot that names the
step, so tests can assert on it without rendering anything.
"""

from __future__ import annotations

import asyncio
import base64
import random
from typing import Awaitable, Callable, Optional

from stepshot.backends.base import StepBackend
from stepshot.errors import StepExecutionError
from stepshot.models import Step

SIMULATED_FAILURE_MESSAGE = "Simulated failure for MVP"

_PLACEHOLDER_SVG = """<svg width="320" height="180" xmlns="http://www.w3.org/2000/svg">
  <rect width="320" height="180" fill="#f3f4f6"/>
  <text x="160" y="80" font-family="Arial" font-size="16" fill="#6b7280" text-anchor="middle">Simulated Screenshot</text>
  <text x="160" y="105" font-family="Arial" font-size="14" fill="#9ca3af" text-anchor="middle">Step {step_number}: {action}</text>
</svg>"""


def placeholder_screenshot(step_number: int, action: str) -> str:
    """Return an SVG data URI labelled with the 1-based step number and action."""

    safe_action = action.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    svg = _PLACEHOLDER_SVG.format(step_number=step_number, action=safe_action)
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


class SimulatedBackend(StepBackend):
    name = "simulated"

    def __init__(
        self,
        *,
        min_delay_ms: int = 350,
        max_delay_ms: int = 1250,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay_ms(self) -> int:
        if self.max_delay_ms <= self.min_delay_ms:
            return self.min_delay_ms
        return self._rng.randrange(self.min_delay_ms, self.max_delay_ms)

    async def _perform(self, index: int, step: Step) -> None:
        await self._sleep(self.next_delay_ms() / 1000)
        if step.should_fail:
            raise StepExecutionError(SIMULATED_FAILURE_MESSAGE)

    async def capture_screenshot(self, index: int, step: Step) -> Optional[str]:
        return placeholder_screenshot(index + 1, step.action)
