"""Runtime settings for planmate.

Each setting is looked up in ``PLANMATE_<NAME>`` first, then in
``planmate.toml``, then in ``DEFAULTS``. Values from the environment or the
file are coerced to the type of the default.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

ENV_PREFIX = "PLANMATE_"
CONFIG_FILENAME = "planmate.toml"

DEFAULTS: dict[str, Any] = {
    "app_host": "0.0.0.0",
    "app_port": 8000,
    "events_per_page": 10,
    "max_events_per_page": 100,
    "enable_scheduler": True,
    "sqlite_vacuum_hours": 12,
    "seed_users": 12,
    "seed_events": 4,
    "seed_attendees_per_event": 6,
    "seed_polls_per_event": 2,
}

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, (bool, int, float)):
        return bool(raw)
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Cannot parse boolean value from {raw!r}")


def coerce(key: str, raw: Any) -> Any:
    """Convert ``raw`` to the type of ``DEFAULTS[key]``."""
    kind = type(DEFAULTS[key])
    if kind is bool:
        return parse_bool(raw)
    return kind(raw)


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    app_host: str
    app_port: int
    events_per_page: int
    max_events_per_page: int
    enable_scheduler: bool
    sqlite_vacuum_hours: int
    seed_users: int
    seed_events: int
    seed_attendees_per_event: int
    seed_polls_per_event: int
    config_path: Path = field(compare=False)

    @property
    def vacuum_interval(self) -> timedelta:
        return timedelta(hours=self.sqlite_vacuum_hours)


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    return tomllib.loads(path.read_text(encoding="utf-8"))


def _lookup(key: str, file_values: Mapping[str, Any]) -> Any:
    env_value = os.environ.get(ENV_PREFIX + key.upper())
    if env_value is not None:
        return coerce(key, env_value)
    if key in file_values:
        return coerce(key, file_values[key])
    return DEFAULTS[key]


def _anchor(base: Path, value: str | Path | None, fallback: Path) -> Path:
    if not value:
        return fallback
    path = Path(value)
    return path if path.is_absolute() else base / path


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.environ.get(ENV_PREFIX + "BASE_DIR") or Path.cwd())
    config_path = Path(
        config_override
        or os.environ.get(ENV_PREFIX + "CONFIG")
        or base_dir / CONFIG_FILENAME
    )
    file_values = read_config_file(config_path)

    data_dir = _anchor(
        base_dir,
        os.environ.get(ENV_PREFIX + "DATA_DIR") or file_values.get("data_dir"),
        base_dir / "data",
    )
    database_path = _anchor(
        base_dir,
        os.environ.get(ENV_PREFIX + "DB") or file_values.get("database_path"),
        data_dir / "planmate.db",
    )
    data_dir.mkdir(parents=True, exist_ok=True)
    return Settings(
        base_dir=base_dir,
        data_dir=data_dir,
        database_path=database_path,
        config_path=config_path,
        **{key: _lookup(key, file_values) for key in DEFAULTS},
    )


def settings_as_dict(current: Settings) -> dict[str, Any]:
    data = asdict(current)
    data.pop("config_path")
    return {key: str(value) if isinstance(value, Path) else value for key, value in data.items()}


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return repr(value)
    quoted = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{quoted}"'


def write_config_file(values: Mapping[str, Any], *, path: Path) -> None:
    body = "".join(f"{key} = {_toml_value(values[key])}\n" for key in sorted(values))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("# planmate configuration\n" + body, encoding="utf-8")


def save_config(updates: Mapping[str, Any], *, path: Path | None = None) -> Settings:
    """Persist known settings to the TOML file and swap in the reloaded settings.

    Unknown keys are ignored. Keys already in the file are kept.
    """
    global settings
    target = path or settings.config_path
    values = read_config_file(target)
    values.update(
        {key: coerce(key, value) for key, value in updates.items() if key in DEFAULTS}
    )
    write_config_file(values, path=target)
    settings = load_settings(target)
    return settings


settings = load_settings()
