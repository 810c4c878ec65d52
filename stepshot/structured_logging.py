"""JSONL event trail for runs."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LogPaths:
    base: Path
    events: Path


class RunEventLog:
    """Writes one JSON object per line for every step outcome and status change."""

    def __init__(self, run_id: str, paths: LogPaths) -> None:
        self.run_id = run_id
        self.paths = paths
        self._events_file = paths.events.open("a", encoding="utf-8")

    def log_event(
        self,
        event: str,
        *,
        step: Optional[int] = None,
        action: Optional[str] = None,
        status: Optional[str] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
        backend: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = {
            "ts": time.time(),
            "run_id": self.run_id,
            "event": event,
            "step": step,
            "action": action,
            "status": status,
            "duration_ms": duration_ms,
            "error": error,
            "backend": backend,
            "metadata": metadata or {},
        }
        self._events_file.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self._events_file.flush()

    def close(self) -> None:
        try:
            self._events_file.close()
        except OSError as exc:
            log.debug("Closing event log for run %s failed: %s", self.run_id, exc)


def prepare_log_paths(run_id: str, root: Path) -> LogPaths:
    base = root / run_id
    base.mkdir(parents=True, exist_ok=True)
    return LogPaths(base=base, events=base / "events.jsonl")


def open_event_log(run_id: str, root: Optional[Path]) -> Optional[RunEventLog]:
    """Open the event trail for ``run_id`` or return ``None`` when disabled or unwritable."""

    if root is None:
        return None
    try:
        return RunEventLog(run_id, prepare_log_paths(run_id, root))
    except OSError as exc:
        log.warning("Event log for run %s disabled: %s", run_id, exc)
        return None
