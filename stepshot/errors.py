"""Error taxonomy shared by the backends, the engine and the script loader.

None of these errors escape to whoever triggers a run.  Step errors become
failed step records, backend errors drive the fallback to the simulator and
malformed scripts turn into empty runs.
"""

from __future__ import annotations


class StepShotError(Exception):
    """Base class for all runner errors."""


class StepError(StepShotError):
    """A single step could not be performed."""

    kind = "step_error"


class MissingField(StepError):
    kind = "missing_field"

    def __init__(self, field: str, action: str) -> None:
        super().__init__(f"Missing {field} for {action}")
        self.field = field
        self.action = action


class StepTimeout(StepError):
    kind = "timeout"


class StepExecutionError(StepError):
    kind = "step_execution_error"


class BackendUnavailable(StepShotError):
    """The browser driver cannot be used at all in this environment."""


class BackendInitFailure(StepShotError):
    """The browser driver is installed but the session could not be opened."""


class ScriptMalformed(StepShotError):
    """Script content did not parse into a step sequence."""
