"""Typed models for scripts, steps and runs."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stepshot.errors import ScriptMalformed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepAction(str, Enum):
    OPEN = "open"
    CLICK = "click"
    TYPE = "type"
    WAIT_FOR_SELECTOR = "waitForSelector"


_REQUIRED_FIELDS: Dict[StepAction, str] = {
    StepAction.OPEN: "target",
    StepAction.CLICK: "selector",
    StepAction.TYPE: "selector",
    StepAction.WAIT_FOR_SELECTOR: "selector",
}


class Step(BaseModel):
    """One authored browser action.  Unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    action: str
    target: Optional[str] = None
    selector: Optional[str] = None
    text: Optional[str] = None
    should_fail: bool = Field(default=False, alias="shouldFail")

    @property
    def kind(self) -> Optional[StepAction]:
        try:
            return StepAction(self.action)
        except ValueError:
            return None

    def missing_field(self) -> Optional[str]:
        kind = self.kind
        if kind is None:
            return None
        field = _REQUIRED_FIELDS[kind]
        if not getattr(self, field):
            return field
        return None


class RunSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    browser: str = "chrome"
    headless: bool = True
    continue_on_error: bool = Field(default=False, alias="continueOnError")

    @field_validator("browser", mode="before")
    @classmethod
    def _normalise_browser(cls, value: Any) -> Any:
        if value is None:
            return "chrome"
        return str(value).strip().lower() or "chrome"


class ScriptDocument(BaseModel):
    """Parsed script content: the step sequence plus its run settings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    steps: List[Step]
    settings: RunSettings = Field(default_factory=RunSettings)

    @field_validator("settings", mode="before")
    @classmethod
    def _default_settings(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def actions(self) -> List[str]:
        return [step.action for step in self.steps]


def parse_script(content: str) -> ScriptDocument:
    """Parse JSON script content, raising :class:`ScriptMalformed` on any problem."""

    try:
        data = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise ScriptMalformed(f"Script content is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ScriptMalformed("Script content must be a JSON object")
    if not isinstance(data.get("steps"), list):
        raise ScriptMalformed("Script must contain steps array")
    try:
        return ScriptDocument.model_validate(data)
    except ValidationError as exc:
        raise ScriptMalformed(f"Script steps are invalid: {exc.error_count()} validation error(s)") from exc


def load_script(content: Optional[str]) -> Tuple[ScriptDocument, Optional[str]]:
    """Like :func:`parse_script` but never raises.

    Malformed or missing content yields an empty document together with the
    reason it was rejected.
    """

    if content is None:
        return ScriptDocument(steps=[]), "Script not found"
    try:
        return parse_script(content), None
    except ScriptMalformed as exc:
        return ScriptDocument(steps=[]), str(exc)


class StepStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunStepState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    status: StepStatus = StepStatus.PENDING
    duration_ms: Optional[int] = Field(default=None, alias="durationMs")
    screenshot: Optional[str] = None
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class Run(BaseModel):
    """Live execution record of one script run."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    script_id: str = Field(alias="scriptId")
    started_at: datetime = Field(default_factory=utcnow, alias="startedAt")
    status: RunStatus = RunStatus.RUNNING
    steps: List[RunStepState] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)

    def snapshot(self) -> "Run":
        return self.model_copy(deep=True)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Script(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    content: str
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
