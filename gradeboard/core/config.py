"""
Typed configuration helpers for the grade dashboard.

The YAML layout mirrors the sections below; every relative path is resolved
against the directory holding the config file so the server can be launched
from anywhere.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

CONFIG_ENV_VAR = "GRADEBOARD_CONFIG"
PORT_ENV_VAR = "GRADEBOARD_PORT"
DEFAULT_STUNO_ENV_VAR = "GRADEBOARD_DEFAULT_STUNO"


class ServerConfig(BaseModel):
    """Bind address for the uvicorn server."""

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)


class DataConfig(BaseModel):
    """Directories written by the external scripts and read by the dashboard."""

    analysis_dir: Path = Field(default=Path("analysis"))
    grades_dir: Path = Field(default=Path("grades"))
    static_dir: Path | None = Field(default=None, description="Optional directory served under /static.")

    @field_validator("analysis_dir", "grades_dir", "static_dir", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return Path(value).expanduser()


class CacheConfig(BaseModel):
    max_entries: int = Field(default=256, ge=1)
    ttl_seconds: float | None = Field(default=None, gt=0)


class CollectorConfig(BaseModel):
    """External commands making up the collection pipeline."""

    workdir: Path = Field(default=Path("."))
    timeout_seconds: float | None = Field(default=300.0, gt=0)
    collect_command: List[str] = Field(default_factory=lambda: ["node", "index.js"])
    analyze_command: List[str] = Field(default_factory=lambda: ["node", "analyze.js"])
    history_path: Path | None = Field(default=Path("logs/collections.jsonl"))

    @field_validator("collect_command", "analyze_command", mode="before")
    @classmethod
    def split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("collect_command", "analyze_command")
    @classmethod
    def require_program(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("command must name at least a program")
        return value


class DashboardConfig(BaseModel):
    """Top-level configuration for the dashboard server."""

    model_config = ConfigDict(extra="ignore")

    server: ServerConfig = Field(default_factory=ServerConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    default_stuno: Optional[str] = None
    show_rank_panel: bool = True

    @field_validator("default_stuno", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        if isinstance(value, int):
            return str(value)
        return value


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_dashboard_paths(data: Dict[str, Any], base_dir: Path) -> None:
    data_section = data.setdefault("data", {})
    if isinstance(data_section, dict):
        data_section.setdefault("analysis_dir", "analysis")
        data_section.setdefault("grades_dir", "grades")
        for key in ("analysis_dir", "grades_dir", "static_dir"):
            if data_section.get(key):
                data_section[key] = _resolve_config_path(data_section[key], base_dir)

    collector = data.setdefault("collector", {})
    if isinstance(collector, dict):
        collector.setdefault("workdir", ".")
        collector.setdefault("history_path", "logs/collections.jsonl")
        for key in ("workdir", "history_path"):
            if collector.get(key):
                collector[key] = _resolve_config_path(collector[key], base_dir)


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    port = os.getenv(PORT_ENV_VAR)
    if port:
        server = data.setdefault("server", {})
        if isinstance(server, dict):
            server["port"] = port
    default_stuno = os.getenv(DEFAULT_STUNO_ENV_VAR)
    if default_stuno:
        data["default_stuno"] = default_stuno


def load_dashboard_config(path: Path | None = None, *, base_dir: Path | None = None) -> DashboardConfig:
    """Load the dashboard config, falling back to defaults anchored at ``base_dir``.

    With neither ``path`` nor ``GRADEBOARD_CONFIG`` set, the defaults resolve
    against ``base_dir`` (or the working directory).
    """
    if path is None and os.getenv(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])

    data: Dict[str, Any] = {}
    if path is not None:
        path = path.expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Dashboard config not found: {path}")
        data = read_yaml_file(path)
        anchor = base_dir or path.parent
    else:
        anchor = base_dir or Path.cwd()

    _absolutize_dashboard_paths(data, base_dir=anchor.resolve())
    _apply_env_overrides(data)
    try:
        return DashboardConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid dashboard config in {path or anchor}") from exc
