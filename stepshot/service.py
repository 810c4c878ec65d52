"""Run service: starts runs in the background and serves their snapshots.

Runs execute as independent tasks on a private asyncio loop living in a
daemon thread.  Callers get the run id back immediately and poll
:meth:`RunService.get_run`; the registry is the only channel between the
running task and its readers.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Dict, List, Optional

from stepshot.config import RunnerConfig
from stepshot.engine import ExecutionEngine
from stepshot.models import Run, ScriptDocument, load_script
from stepshot.store import RunRegistry, ScriptStore

log = logging.getLogger(__name__)


class RunService:
    def __init__(
        self,
        config: Optional[RunnerConfig] = None,
        *,
        registry: Optional[RunRegistry] = None,
        scripts: Optional[ScriptStore] = None,
        engine: Optional[ExecutionEngine] = None,
    ) -> None:
        self.config = config or RunnerConfig()
        self.registry = registry or RunRegistry()
        self.scripts = scripts or ScriptStore()
        self.engine = engine or ExecutionEngine(self.registry, self.config)
        self._futures: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="stepshot-runs", daemon=True)
        self._thread.start()
        self._closed = False

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def create_run(self, script_id: str, document: ScriptDocument, *, note: Optional[str] = None) -> str:
        """Create a run for ``document`` and start executing it without waiting.

        ``note`` is an optional diagnostic line recorded on the run before the
        first step, e.g. why the script content was rejected.
        """

        if self._closed:
            raise RuntimeError("run service has been shut down")

        run = self.registry.create(script_id, document.actions)
        if note:
            run.logs.append(note)
            self.registry.put(run)

        future = asyncio.run_coroutine_threadsafe(self.engine.execute(run, document), self._loop)
        with self._lock:
            self._futures[run.id] = future
        future.add_done_callback(lambda done, run_id=run.id: self._on_done(run_id, done))
        log.info("Started run %s for script %s (%d steps)", run.id, script_id, len(run.steps))
        return run.id

    def start_script(self, script_id: str) -> Optional[str]:
        """Start a run of a stored script; ``None`` when the script does not exist."""

        script = self.scripts.get(script_id)
        if script is None:
            return None
        document, reason = load_script(script.content)
        note = f"Script content rejected: {reason}" if reason else None
        if reason:
            log.warning("Script %s is malformed: %s", script_id, reason)
        return self.create_run(script_id, document, note=note)

    def get_run(self, run_id: str) -> Optional[Run]:
        return self.registry.get(run_id)

    def active_runs(self) -> List[str]:
        with self._lock:
            return [run_id for run_id, future in self._futures.items() if not future.done()]

    def shutdown(self, timeout: float = 5.0) -> None:
        """Wait up to ``timeout`` seconds for active runs, then stop the loop."""

        if self._closed:
            return
        self._closed = True
        with self._lock:
            pending = [future for future in self._futures.values() if not future.done()]
        if pending:
            _, not_done = concurrent.futures.wait(pending, timeout=timeout)
            for future in not_done:
                future.cancel()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _on_done(self, run_id: str, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._futures.pop(run_id, None)
        if future.cancelled():
            log.warning("Run %s was cancelled", run_id)
            return
        exc = future.exception()
        if exc is not None:
            log.error("Run %s task failed: %s", run_id, exc, exc_info=exc)
