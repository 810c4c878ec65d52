"""Configuration loader for the run engine."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

ENV_PREFIX = "STEPSHOT_"
BACKEND_CHOICES = ("auto", "playwright", "simulated")

DEFAULTS: Dict[str, Any] = {
    "backend": "auto",
    "wait_timeout_ms": 10000,
    "navigation_timeout_ms": 30000,
    "action_timeout_ms": 10000,
    "simulated_min_delay_ms": 350,
    "simulated_max_delay_ms": 1250,
    "event_log_root": None,
    "log_level": "INFO",
    "seed_example": True,
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def parse_flag(value: Any, *, default: bool = False) -> bool:
    """Interpret ``value`` as a boolean flag, returning ``default`` when unclear."""

    if isinstance(value, bool):
        return value
    if value is None:
        return default
    trimmed = str(value).strip().lower()
    if trimmed in _TRUTHY:
        return True
    if trimmed in _FALSY:
        return False
    return default


@dataclass(slots=True)
class RunnerConfig:
    backend: str = DEFAULTS["backend"]
    wait_timeout_ms: int = DEFAULTS["wait_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    action_timeout_ms: int = DEFAULTS["action_timeout_ms"]
    simulated_min_delay_ms: int = DEFAULTS["simulated_min_delay_ms"]
    simulated_max_delay_ms: int = DEFAULTS["simulated_max_delay_ms"]
    event_log_root: Optional[Path] = DEFAULTS["event_log_root"]
    log_level: str = DEFAULTS["log_level"]
    seed_example: bool = DEFAULTS["seed_example"]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "RunnerConfig":
        data = dict(DEFAULTS)
        data.update({key: value for key, value in mapping.items() if key in DEFAULTS})

        backend = str(data["backend"]).strip().lower()
        if backend not in BACKEND_CHOICES:
            raise ValueError(f"backend must be one of {', '.join(BACKEND_CHOICES)}, got '{backend}'")

        min_delay = int(data["simulated_min_delay_ms"])
        max_delay = int(data["simulated_max_delay_ms"])
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("simulated delay range must satisfy 0 <= min <= max")

        log_root = data["event_log_root"]
        return cls(
            backend=backend,
            wait_timeout_ms=int(data["wait_timeout_ms"]),
            navigation_timeout_ms=int(data["navigation_timeout_ms"]),
            action_timeout_ms=int(data["action_timeout_ms"]),
            simulated_min_delay_ms=min_delay,
            simulated_max_delay_ms=max_delay,
            event_log_root=Path(log_root) if log_root else None,
            log_level=str(data["log_level"]).upper(),
            seed_example=parse_flag(data["seed_example"], default=True),
        )


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> RunnerConfig:
    """Load configuration from defaults, an optional TOML file and the environment.

    Environment variables (``STEPSHOT_BACKEND``, ``STEPSHOT_WAIT_TIMEOUT_MS``...)
    win over the ``[stepshot]`` table of the TOML file.
    """

    env = os.environ if environ is None else environ

    env_map: Dict[str, Any] = {}
    for key, value in env.items():
        if key.startswith(ENV_PREFIX) and key != f"{ENV_PREFIX}CONFIG":
            env_map[key[len(ENV_PREFIX):].lower()] = value

    path = config_path or Path(env.get(f"{ENV_PREFIX}CONFIG", "stepshot.toml"))
    file_map = _load_toml(path).get("stepshot", {})

    merged = {**file_map, **env_map}
    return RunnerConfig.from_mapping(merged)
