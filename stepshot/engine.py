"""Run execution engine.

The engine walks a script's steps strictly in order against one backend,
records every outcome into the run and writes the whole run back to the
registry after each change.  Backend selection happens once, before the
first step: the Playwright driver when it is installed and its session
opens, the simulator otherwise.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from stepshot.backends.availability import BackendAvailability, DriverHandle, Unavailable, probe_driver
from stepshot.backends.base import StepBackend
from stepshot.backends.playwright_driver import PlaywrightBackend
from stepshot.backends.simulated import SimulatedBackend
from stepshot.config import RunnerConfig
from stepshot.models import Run, RunSettings, RunStatus, RunStepState, ScriptDocument, StepStatus
from stepshot.store import RunRegistry
from stepshot.structured_logging import RunEventLog, open_event_log

log = logging.getLogger(__name__)

DriverFactory = Callable[[DriverHandle, RunSettings], StepBackend]
SimulatorFactory = Callable[[], StepBackend]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ExecutionEngine:
    def __init__(
        self,
        registry: RunRegistry,
        config: Optional[RunnerConfig] = None,
        *,
        probe: Optional[Callable[[], BackendAvailability]] = None,
        driver_factory: Optional[DriverFactory] = None,
        simulated_factory: Optional[SimulatorFactory] = None,
    ) -> None:
        self.registry = registry
        self.config = config or RunnerConfig()
        self._probe = probe or (lambda: probe_driver(self.config.backend))
        self._driver_factory = driver_factory or self._default_driver
        self._simulated_factory = simulated_factory or self._default_simulator

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def execute(self, run: Run, document: ScriptDocument) -> Run:
        """Execute ``document`` for ``run`` and return the final run state.

        Step failures and backend problems are recorded on the run; this
        coroutine only raises on cancellation.
        """

        run = run.snapshot()
        events = open_event_log(run.id, self.config.event_log_root)
        backend: Optional[StepBackend] = None
        try:
            if len(document.steps) != len(run.steps):
                self._finish(
                    run,
                    RunStatus.FAILED,
                    events,
                    log_line=(
                        f"Runner error: script has {len(document.steps)} steps "
                        f"but the run was created with {len(run.steps)}"
                    ),
                )
                return run
            backend = await self._select_backend(run, document.settings)
            await self._run_steps(run, document, backend, events)
        except Exception as exc:
            log.exception("Run %s aborted", run.id)
            if not run.status.is_terminal:
                self._finish(run, RunStatus.FAILED, events, log_line=f"Runner error: {exc}")
        finally:
            if backend is not None:
                await self._release(backend)
            if events is not None:
                events.close()
        return run

    # ------------------------------------------------------------------
    # backend selection
    # ------------------------------------------------------------------
    async def _select_backend(self, run: Run, settings: RunSettings) -> StepBackend:
        availability = self._probe()
        if isinstance(availability, Unavailable):
            log.info("Run %s: %s, using simulated backend", run.id, availability.reason)
            return self._simulated_factory()

        driver = self._driver_factory(availability.handle, settings)
        try:
            await driver.open_session()
        except Exception as exc:
            log.warning("Run %s: browser driver failed to initialize: %s", run.id, exc)
            run.logs.append(f"Browser driver failed to initialize: {exc}")
            self._persist(run)
            await self._release(driver)
            return self._simulated_factory()

        log.info("Run %s: browser session opened (%s)", run.id, settings.browser)
        return driver

    def _default_driver(self, handle: DriverHandle, settings: RunSettings) -> StepBackend:
        return PlaywrightBackend(
            handle,
            settings,
            wait_timeout_ms=self.config.wait_timeout_ms,
            navigation_timeout_ms=self.config.navigation_timeout_ms,
            action_timeout_ms=self.config.action_timeout_ms,
        )

    def _default_simulator(self) -> StepBackend:
        return SimulatedBackend(
            min_delay_ms=self.config.simulated_min_delay_ms,
            max_delay_ms=self.config.simulated_max_delay_ms,
        )

    # ------------------------------------------------------------------
    # step loop
    # ------------------------------------------------------------------
    async def _run_steps(
        self,
        run: Run,
        document: ScriptDocument,
        backend: StepBackend,
        events: Optional[RunEventLog],
    ) -> None:
        # Backend selection never executes a step, so the loop always starts from step 0.
        assert all(state.status is StepStatus.PENDING for state in run.steps)

        stop_on_failure = not document.settings.continue_on_error
        any_failed = False

        for index, step in enumerate(document.steps):
            number = index + 1
            started = time.perf_counter()

            if step.kind is None:
                run.steps[index] = RunStepState(
                    action=step.action,
                    status=StepStatus.SKIPPED,
                    duration_ms=_elapsed_ms(started),
                )
                run.logs.append(f'Step {number}: Unknown action "{step.action}" - skipping')
                self._persist(run)
                self._record_step(events, run, index, backend)
                continue

            outcome = await backend.execute(index, step)
            duration_ms = _elapsed_ms(started)

            if outcome.ok:
                run.steps[index] = RunStepState(
                    action=step.action,
                    status=StepStatus.PASSED,
                    duration_ms=duration_ms,
                    screenshot=outcome.screenshot,
                )
                run.logs.append(f"Step {number} ({step.action}) -> passed")
                self._persist(run)
                self._record_step(events, run, index, backend)
                continue

            any_failed = True
            run.steps[index] = RunStepState(
                action=step.action,
                status=StepStatus.FAILED,
                duration_ms=duration_ms,
                error_message=outcome.message,
            )
            run.logs.append(f"Step {number} ({step.action}) -> failed: {outcome.message}")
            self._persist(run)
            self._record_step(events, run, index, backend)

            if stop_on_failure:
                self._finish(run, RunStatus.FAILED, events, backend=backend)
                return

        self._finish(run, RunStatus.FAILED if any_failed else RunStatus.COMPLETED, events, backend=backend)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _persist(self, run: Run) -> None:
        self.registry.put(run)

    def _finish(
        self,
        run: Run,
        status: RunStatus,
        events: Optional[RunEventLog],
        *,
        log_line: Optional[str] = None,
        backend: Optional[StepBackend] = None,
    ) -> None:
        if log_line:
            run.logs.append(log_line)
        run.status = status
        self._persist(run)
        log.info("Run %s finished: %s", run.id, status.value)
        if events is not None:
            events.log_event(
                "run_finished",
                status=status.value,
                backend=backend.name if backend is not None else None,
                error=log_line,
            )

    @staticmethod
    def _record_step(events: Optional[RunEventLog], run: Run, index: int, backend: StepBackend) -> None:
        if events is None:
            return
        state = run.steps[index]
        events.log_event(
            "step",
            step=index + 1,
            action=state.action,
            status=state.status.value,
            duration_ms=state.duration_ms,
            error=state.error_message,
            backend=backend.name,
        )

    @staticmethod
    async def _release(backend: StepBackend) -> None:
        try:
            await backend.close()
        except Exception as exc:
            log.debug("Releasing %s backend failed: %s", backend.name, exc)
