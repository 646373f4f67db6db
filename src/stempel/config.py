"""Configuration loading, validation and saving."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from stempel.storage.store import atomic_write_json


APP_NAME = "stempel"
CONFIG_FILENAME = "config.json"
STORAGE_FILENAME = "stempel.json"
LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}

_DEFAULTS: dict[str, Any] = {
    "stats": {"daily_hours": 8, "window_months": 2},
    "paths": {"storage": None},
    "logging": {"level": "warning"},
}


@dataclass(slots=True)
class StatsSection:
    daily_hours: float
    window_months: int

    @property
    def daily_target(self) -> timedelta:
        return timedelta(hours=self.daily_hours)


@dataclass(slots=True)
class PathsSection:
    storage: str


@dataclass(slots=True)
class LoggingSection:
    level: str


@dataclass(slots=True)
class AppConfig:
    stats: StatsSection
    paths: PathsSection
    logging: LoggingSection


@dataclass(slots=True)
class ConfigSnapshot:
    path: str
    exists: bool
    valid: bool
    issues: list[str]
    warnings: list[str]
    effective_config: AppConfig | None
    effective_raw: dict[str, Any] | None = None


def config_dir() -> Path:
    """Per-user configuration directory; ``STEMPEL_CONFIG_DIR`` wins when set."""
    override = os.getenv("STEMPEL_CONFIG_DIR")
    if override:
        return Path(override)
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming"
        return Path(base) / APP_NAME
    base = os.environ.get("XDG_CONFIG_HOME") or (Path.home() / ".config")
    return Path(base) / APP_NAME


def default_config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def default_storage_path() -> Path:
    return config_dir() / STORAGE_FILENAME


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_update(out[key], value)
        else:
            out[key] = value
    return out


def _parse_override_value(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered == "null":
        return None
    try:
        if "." in raw:
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _set_path(target: dict[str, Any], dotted: str, value: Any) -> None:
    parts = [p for p in dotted.split(".") if p]
    node: dict[str, Any] = target
    for part in parts[:-1]:
        current = node.get(part)
        if not isinstance(current, dict):
            current = {}
            node[part] = current
        node = current
    if parts:
        node[parts[-1]] = value


def _env_overrides() -> dict[str, Any]:
    mapping = {
        "STEMPEL_DAILY_HOURS": "stats.daily_hours",
        "STEMPEL_WINDOW_MONTHS": "stats.window_months",
        "STEMPEL_STORAGE": "paths.storage",
        "STEMPEL_LOG_LEVEL": "logging.level",
    }
    out: dict[str, Any] = {}
    for env_name, cfg_path in mapping.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        value = raw if cfg_path == "paths.storage" else _parse_override_value(raw)
        _set_path(out, cfg_path, value)
    return out


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate(raw: dict[str, Any]) -> tuple[list[str], list[str]]:
    issues: list[str] = []
    warnings: list[str] = []
    unknown = set(raw.keys()) - set(_DEFAULTS.keys())
    if unknown:
        warnings.append(f"Unknown top-level keys ignored: {', '.join(sorted(unknown))}")

    stats = raw.get("stats")
    if isinstance(stats, dict):
        daily_hours = stats.get("daily_hours")
        if not _is_number(daily_hours) or not 0 <= daily_hours <= 24:
            issues.append("stats.daily_hours must be a number between 0 and 24")
        window = stats.get("window_months")
        if not isinstance(window, int) or isinstance(window, bool) or window < 0:
            issues.append("stats.window_months must be a non-negative integer")
        elif window == 0:
            warnings.append("stats.window_months is 0; stats will always be empty")
    else:
        issues.append("stats must be an object")

    paths = raw.get("paths")
    if isinstance(paths, dict):
        storage = paths.get("storage")
        if storage is not None and (not isinstance(storage, str) or not storage.strip()):
            issues.append("paths.storage must be a non-empty string or null")
    else:
        issues.append("paths must be an object")

    logging_raw = raw.get("logging")
    if isinstance(logging_raw, dict):
        level = str(logging_raw.get("level", "")).lower()
        if level not in LOG_LEVELS:
            issues.append(f"logging.level must be one of {'|'.join(sorted(LOG_LEVELS))}")
    else:
        issues.append("logging must be an object")

    return issues, warnings


def _to_config(raw: dict[str, Any]) -> AppConfig:
    storage = raw["paths"].get("storage")
    return AppConfig(
        stats=StatsSection(
            daily_hours=float(raw["stats"]["daily_hours"]),
            window_months=int(raw["stats"]["window_months"]),
        ),
        paths=PathsSection(storage=str(Path(storage).expanduser()) if storage else str(default_storage_path())),
        logging=LoggingSection(level=str(raw["logging"]["level"]).lower()),
    )


def default_config() -> AppConfig:
    """Built-in defaults, also used when the file config is invalid."""
    return _to_config(_DEFAULTS)


def read_config_snapshot(path: str | Path | None = None, cli_overrides: dict[str, str] | None = None) -> ConfigSnapshot:
    """Merge defaults, config file, env vars and CLI overrides, then validate."""
    config_path = Path(path) if path is not None else default_config_path()
    warnings: list[str] = []
    exists = config_path.exists()
    merged = dict(_DEFAULTS)

    if exists:
        try:
            file_raw = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            return ConfigSnapshot(
                path=str(config_path),
                exists=True,
                valid=False,
                issues=[f"Failed to parse config JSON: {exc}"],
                warnings=[],
                effective_config=None,
            )
        if not isinstance(file_raw, dict):
            return ConfigSnapshot(
                path=str(config_path),
                exists=True,
                valid=False,
                issues=["Top-level config must be an object"],
                warnings=[],
                effective_config=None,
            )
        merged = _deep_update(merged, file_raw)
    else:
        warnings.append(f"No config file at {config_path}; using defaults")

    merged = _deep_update(merged, _env_overrides())
    if cli_overrides:
        cli_tree: dict[str, Any] = {}
        for key, value in cli_overrides.items():
            _set_path(cli_tree, key, value if key == "paths.storage" else _parse_override_value(value))
        merged = _deep_update(merged, cli_tree)

    issues, validation_warnings = _validate(merged)
    warnings.extend(validation_warnings)
    if issues:
        return ConfigSnapshot(
            path=str(config_path),
            exists=exists,
            valid=False,
            issues=issues,
            warnings=warnings,
            effective_config=None,
        )
    return ConfigSnapshot(
        path=str(config_path),
        exists=exists,
        valid=True,
        issues=[],
        warnings=warnings,
        effective_config=_to_config(merged),
        effective_raw=merged,
    )


def ensure_runtime_config(snapshot: ConfigSnapshot) -> AppConfig:
    """Return valid runtime config; fall back to defaults when the snapshot is invalid."""
    if snapshot.effective_config is not None:
        return snapshot.effective_config
    return default_config()


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    """Persist the user-tunable parts of ``config``; the storage path is kept only if non-default."""
    target = Path(path) if path is not None else default_config_path()
    payload = asdict(config)
    if config.paths.storage == str(default_storage_path()):
        payload["paths"]["storage"] = None
    atomic_write_json(target, payload)
    return target
