"""YAML configuration for stress-test runs."""

from __future__ import annotations

import copy
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .document import DEFAULT_TIMEOUT, SyntacticInfoMode
from .model import Page, RequestSet, RewriteMode
from .orchestrator import RunOptions
from .request_info import RequestListener

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ConfigError",
    "RunSettings",
    "ServiceSettings",
    "StressTesterConfig",
    "copy_config_template",
    "parse_config",
    "read_config",
    "write_config",
]

DEFAULT_CONFIG_NAME = "stress-tester.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "service": {
        "command": [],
        "timeout_seconds": DEFAULT_TIMEOUT,
    },
    "run": {
        "rewrite_mode": RewriteMode.NONE.value,
        "requests": ["CursorInfo", "RangeInfo", "CodeComplete"],
        "ast_build_limit": None,
        "page": "1/1",
        "syntax_mode": SyntacticInfoMode.SYNTAX_TREE_JSON.value,
        "tolerate_type_errors": False,
    },
    "compiler_args": [],
}


class ConfigError(ValueError):
    """Raised when a configuration document holds an invalid value."""


class SettingsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ServiceSettings(SettingsModel):
    """How to reach the analysis service."""

    command: List[str] = Field(default_factory=list)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return shlex.split(value)
        return value


class RunSettings(SettingsModel):
    rewrite_mode: RewriteMode = RewriteMode.NONE
    requests: List[str] = Field(default_factory=lambda: list(RequestSet.ALL.value_names))
    ast_build_limit: Optional[int] = Field(default=None, ge=0)
    page: str = "1/1"
    syntax_mode: SyntacticInfoMode = SyntacticInfoMode.SYNTAX_TREE_JSON
    tolerate_type_errors: bool = False

    @field_validator("requests", mode="before")
    @classmethod
    def _coerce_requests(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part for part in value.replace(",", " ").split() if part]
        return value

    @field_validator("requests")
    @classmethod
    def _known_requests(cls, value: List[str]) -> List[str]:
        RequestSet.from_names(value)
        return value

    @field_validator("page", mode="before")
    @classmethod
    def _valid_page(cls, value: Any) -> Any:
        if isinstance(value, int):
            value = f"{value}/1"
        if isinstance(value, str):
            Page.parse(value)
        return value

    @property
    def request_set(self) -> RequestSet:
        return RequestSet.from_names(self.requests)


class StressTesterConfig(SettingsModel):
    """Validated view of a configuration document."""

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    run: RunSettings = Field(default_factory=RunSettings)
    compiler_args: List[str] = Field(default_factory=list)

    @field_validator("compiler_args", mode="before")
    @classmethod
    def _split_args(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return shlex.split(value)
        return value

    def run_options(self, listener: RequestListener | None = None) -> RunOptions:
        run = self.run
        return RunOptions(
            requests=run.request_set,
            rewrite_mode=run.rewrite_mode,
            ast_build_limit=run.ast_build_limit,
            page=Page.parse(run.page),
            listener=listener,
            syntax_mode=run.syntax_mode,
            tolerate_type_errors=run.tolerate_type_errors,
            timeout=self.service.timeout_seconds,
        )


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def parse_config(data: Dict[str, Any], overrides: Dict[str, Dict[str, Any]] | None = None) -> StressTesterConfig:
    """Validate ``data`` after applying per-section ``overrides``.

    Override values of ``None`` leave the file's value in place.
    """
    merged = copy.deepcopy(data)
    for section, values in (overrides or {}).items():
        target = merged.get(section)
        if not isinstance(target, dict):
            target = merged[section] = {}
        for key, value in values.items():
            if value is not None:
                target[key] = value
    try:
        return StressTesterConfig.model_validate(merged)
    except ValidationError as error:
        raise ConfigError(_format_validation_error(error)) from error


def read_config(config_path: Path) -> Dict[str, Any]:
    """Read a configuration document, raising :class:`ConfigError` for any unusable file."""
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise ConfigError(f"Config file not found: {config_path}") from error
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse {config_path}: {error}") from error
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must hold a mapping of config sections, got {type(data).__name__}")
    return data


def write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Write ``config_data`` with its sections in template order."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.safe_dump(config_data, sort_keys=False, allow_unicode=True), encoding="utf-8")


def _format_validation_error(error: ValidationError) -> str:
    lines: list[str] = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ())) or "<root>"
        lines.append(f"{location}: {issue.get('msg', 'invalid value')}")
    return "Invalid configuration: " + "; ".join(lines)

