"""Run configuration for the visual-regression pipeline."""

from __future__ import annotations

import json
import math
import os
import shlex
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

ENV_PREFIX = "LSVRT_"

# env suffix -> field name
ENV_FIELDS = {
    "PORT": "port",
    "STORYBOOK_COMMAND": "storybook_command",
    "STORYCAP_OPTIONS": "storycap_options",
    "REGCLI_OPTIONS": "regcli_options",
    "THRESHOLD_RATE": "threshold_rate",
    "THRESHOLD_PIXEL": "threshold_pixel",
    "BACKEND": "backend",
    "READY_TIMEOUT": "ready_timeout",
    "NAMESPACE": "namespace",
    "ALLOW_DIRTY": "allow_dirty",
    "OPEN_REPORT": "open_report",
}

DIFF_BACKENDS = ("reg-cli", "reg-suit")
CAPTURE_TOOL = "storycap"


def _split_tokens(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return shlex.split(v)
    return [str(token) for token in v]


def _default_of(cls: type[BaseModel], name: str) -> Any:
    return cls.model_fields[name].get_default(call_default_factory=True)


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Preview server
    port: int = 6006
    storybook_command: list[str] = Field(default_factory=lambda: ["storybook", "dev"])
    ready_timeout: float = 120.0
    ready_interval: float = 1.5

    # Capture tool
    storycap_options: list[str] = Field(default_factory=list)

    # Diff backend
    backend: Literal["reg-cli", "reg-suit"] = "reg-cli"
    regcli_options: list[str] = Field(default_factory=list)
    threshold_rate: float = 0.001
    threshold_pixel: int = 0

    # Run behaviour
    namespace: str = ".lsvrt"
    allow_dirty: bool = False
    open_report: bool = True

    @field_validator("port", mode="before")
    @classmethod
    def _valid_port(cls, v: Any) -> int:
        try:
            port = int(str(v).strip())
        except (TypeError, ValueError):
            return _default_of(cls, "port")
        return port if 0 < port < 65536 else _default_of(cls, "port")

    @field_validator("threshold_rate", mode="before")
    @classmethod
    def _non_negative_float(cls, v: Any, info: ValidationInfo) -> float:
        try:
            num = float(v)
        except (TypeError, ValueError):
            return _default_of(cls, info.field_name)
        if not math.isfinite(num) or num < 0:
            return _default_of(cls, info.field_name)
        return num

    @field_validator("ready_timeout", "ready_interval", mode="before")
    @classmethod
    def _positive_seconds(cls, v: Any, info: ValidationInfo) -> float:
        try:
            num = float(v)
        except (TypeError, ValueError):
            return _default_of(cls, info.field_name)
        if not math.isfinite(num) or num <= 0:
            return _default_of(cls, info.field_name)
        return num

    @field_validator("threshold_pixel", mode="before")
    @classmethod
    def _non_negative_int(cls, v: Any) -> int:
        try:
            num = int(str(v).strip())
        except (TypeError, ValueError):
            return _default_of(cls, "threshold_pixel")
        return num if num >= 0 else _default_of(cls, "threshold_pixel")

    @field_validator("storybook_command", mode="before")
    @classmethod
    def _command_tokens(cls, v: Any) -> list[str]:
        tokens = _split_tokens(v)
        return tokens or _default_of(cls, "storybook_command")

    @field_validator("storycap_options", "regcli_options", mode="before")
    @classmethod
    def _option_tokens(cls, v: Any) -> list[str]:
        return _split_tokens(v)

    @field_validator("backend", mode="before")
    @classmethod
    def _known_backend(cls, v: Any) -> str:
        value = str(v).strip().lower() if v is not None else ""
        return value if value in DIFF_BACKENDS else _default_of(cls, "backend")

    @field_validator("namespace", mode="before")
    @classmethod
    def _namespace_component(cls, v: Any) -> str:
        value = str(v).strip() if v is not None else ""
        # must stay a single directory component under cwd
        if not value or "/" in value or "\\" in value or value in (".", ".."):
            return _default_of(cls, "namespace")
        return value

    @field_validator("allow_dirty", "open_report", mode="before")
    @classmethod
    def _flag(cls, v: Any, info: ValidationInfo) -> bool:
        if isinstance(v, bool):
            return v
        value = str(v).strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        return _default_of(cls, info.field_name)

    @property
    def diff_tool(self) -> str:
        # each backend is named after the CLI it drives
        return self.backend

    @property
    def required_binaries(self) -> list[str]:
        """Tools that must resolve locally on both branches before a run."""
        return [CAPTURE_TOOL, self.diff_tool]

    @property
    def server_url(self) -> str:
        return f"http://localhost:{self.port}"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional[dict[str, Any]] = None,
        **overrides: Any,
    ) -> "RunConfig":
        """Build a config from ``LSVRT_*`` variables.

        Precedence is ``base`` (e.g. a config file) < environment < overrides.
        Overrides that are ``None`` are ignored.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = dict(base or {})
        for suffix, field_name in ENV_FIELDS.items():
            value = env.get(ENV_PREFIX + suffix)
            if value is not None and value != "":
                data[field_name] = value
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    @classmethod
    def load(cls, path: str | Path, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "RunConfig":
        """Load config from a JSON file, then apply environment and overrides."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a JSON object: {path}")
        return cls.from_env(environ, base=data, **overrides)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
