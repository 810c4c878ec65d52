"""Common step-execution contract shared by the real driver and the simulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Type

from stepshot.errors import MissingField, StepError, StepExecutionError, StepTimeout
from stepshot.models import Step

log = logging.getLogger(__name__)


@dataclass(slots=True)
class StepOutcome:
    """Outcome of a single step: success with an optional screenshot, or a typed failure."""

    ok: bool
    screenshot: Optional[str] = None
    error: Optional[StepError] = None

    @property
    def message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class StepBackend:
    """Base class for step backends.

    Subclasses implement :meth:`_perform` for the recognised actions and may
    override :meth:`capture_screenshot`, :meth:`open_session` and
    :meth:`close`.  :meth:`execute` never raises for step level problems.
    """

    name: ClassVar[str] = "backend"
    timeout_errors: Tuple[Type[BaseException], ...] = ()

    async def open_session(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def execute(self, index: int, step: Step) -> StepOutcome:
        try:
            missing = step.missing_field()
            if missing is not None:
                raise MissingField(missing, step.action)
            await self._perform(index, step)
        except StepError as exc:
            return StepOutcome(ok=False, error=exc)
        except Exception as exc:
            return StepOutcome(ok=False, error=self._translate_error(exc))

        screenshot: Optional[str] = None
        try:
            screenshot = await self.capture_screenshot(index, step)
        except Exception as exc:
            log.warning("%s: screenshot for step %d failed: %s", self.name, index + 1, exc)
        return StepOutcome(ok=True, screenshot=screenshot)

    async def _perform(self, index: int, step: Step) -> None:
        raise NotImplementedError

    async def capture_screenshot(self, index: int, step: Step) -> Optional[str]:
        return None

    def _translate_error(self, exc: Exception) -> StepError:
        message = str(exc) or type(exc).__name__
        if isinstance(exc, (TimeoutError, *self.timeout_errors)):
            return StepTimeout(message)
        return StepExecutionError(message)
