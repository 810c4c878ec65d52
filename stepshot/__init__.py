"""Browser step runner with a pollable execution trace."""

from .engine import ExecutionEngine
from .models import Run, RunSettings, RunStatus, RunStepState, ScriptDocument, Step, StepStatus
from .service import RunService
from .store import RunRegistry, ScriptStore

__all__ = [
    "ExecutionEngine",
    "Run",
    "RunRegistry",
    "RunService",
    "RunSettings",
    "RunStatus",
    "RunStepState",
    "ScriptDocument",
    "ScriptStore",
    "Step",
    "StepStatus",
]
