"""In-memory stores for runs and scripts.

Both stores are plain objects owned by whoever builds the application; there
is no module level instance.  Every public method takes the store lock, so
each call is atomic on its own, and values are copied on the way in and on
the way out so that callers never share a mutable record with the store.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Dict, Iterable, List, Optional

from stepshot.models import Run, RunStepState, Script, utcnow

log = logging.getLogger(__name__)


def _generate_id(prefix: str, taken: Dict[str, object]) -> str:
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:12]}"
        if candidate not in taken:
            return candidate


class RunRegistry:
    """Lifecycle store for :class:`Run` records."""

    def __init__(self) -> None:
        self._runs: Dict[str, Run] = {}
        self._lock = threading.Lock()

    def create(self, script_id: str, step_actions: Iterable[str]) -> Run:
        steps = [RunStepState(action=action) for action in step_actions]
        with self._lock:
            run_id = _generate_id("run", self._runs)
            run = Run(id=run_id, script_id=script_id, steps=steps)
            self._runs[run_id] = run
            size = len(self._runs)
        log.debug("Created run %s for script %s (registry size: %d)", run_id, script_id, size)
        return run.snapshot()

    def get(self, run_id: str) -> Optional[Run]:
        with self._lock:
            run = self._runs.get(run_id)
            return run.snapshot() if run is not None else None

    def put(self, run: Run) -> None:
        """Replace the stored run with a copy of ``run``."""

        snapshot = run.snapshot()
        with self._lock:
            current = self._runs.get(run.id)
            if current is None:
                raise KeyError(f"Unknown run '{run.id}'")
            if current.status.is_terminal:
                raise ValueError(f"Run '{run.id}' is already {current.status.value}")
            self._runs[run.id] = snapshot

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._runs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)


EXAMPLE_SCRIPT = {
    "steps": [
        {"action": "open", "target": "https://example.com"},
        {"action": "click", "selector": "#login"},
        {"action": "type", "selector": "#username", "text": "user@example.com"},
        {"action": "type", "selector": "#password", "text": "hunter2"},
        {"action": "click", "selector": "#submit"},
        {"action": "waitForSelector", "selector": "#dashboard"},
    ],
    "settings": {"continueOnError": False},
}


class ScriptStore:
    """Versioned script definitions keyed by id."""

    def __init__(self) -> None:
        self._scripts: Dict[str, Script] = {}
        self._lock = threading.Lock()

    def list(self) -> List[Script]:
        with self._lock:
            return [script.model_copy() for script in self._scripts.values()]

    def get(self, script_id: str) -> Optional[Script]:
        with self._lock:
            script = self._scripts.get(script_id)
            return script.model_copy() if script is not None else None

    def create(self, name: str, content: str) -> Script:
        with self._lock:
            script_id = _generate_id("script", self._scripts)
            now = utcnow()
            script = Script(id=script_id, name=name, content=content, created_at=now, updated_at=now)
            self._scripts[script_id] = script
            return script.model_copy()

    def update(self, script_id: str, name: str, content: str) -> Optional[Script]:
        with self._lock:
            current = self._scripts.get(script_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={
                    "name": name,
                    "content": content,
                    "version": current.version + 1,
                    "updated_at": utcnow(),
                }
            )
            self._scripts[script_id] = updated
            return updated.model_copy()

    def delete(self, script_id: str) -> bool:
        with self._lock:
            return self._scripts.pop(script_id, None) is not None

    def seed_example(self) -> Optional[Script]:
        with self._lock:
            if self._scripts:
                return None
        script = self.create("Example Script", json.dumps(EXAMPLE_SCRIPT, indent=2))
        log.info("Seeded example script %s", script.id)
        return script
