"""App configuration loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field

CONFIG_FILE = Path.home() / ".config" / "seerdb" / "config.toml"
DATA_DIR_ENV = "SEERDB_DATA_DIR"

_INT_FIELDS = (
    "write_delay_ms",
    "page_size",
    "search_page_size",
    "history_limit",
    "close_timeout_ms",
    "refresh_throttle_ms",
    "pool_max",
)


def _default_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".seerdb"


class PoolOptions(BaseModel):
    """Pool sizing and shutdown hints passed to drivers."""

    max: int = 10
    idle_timeout_ms: int = 30_000
    close_timeout_ms: int = 5_000
    query_timeout_ms: int | None = None


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    data_dir: Path = Field(default_factory=_default_data_dir)
    write_delay_ms: int = 500
    page_size: int = 20
    search_page_size: int = 25
    history_limit: int = 100
    close_timeout_ms: int = 5_000
    refresh_throttle_ms: int = 1_500
    pool_max: int = 10

    @property
    def write_delay(self) -> float:
        """Debounce window in seconds."""

        return self.write_delay_ms / 1000

    def pool_options(self) -> PoolOptions:
        return PoolOptions(max=self.pool_max, close_timeout_ms=self.close_timeout_ms)

    def with_data_dir(self, path: Path | str) -> AppConfig:
        """Return a copy pointing at a different data directory."""

        return self.model_copy(update={"data_dir": Path(path)})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if DATA_DIR_ENV in os.environ:
        # The environment always wins over the file.
        data.pop("data_dir", None)
    return AppConfig(**data)


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [f'data_dir = "{config.data_dir.as_posix()}"']
    for key in _INT_FIELDS:
        lines.append(f"{key} = {getattr(config, key)}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        data_dir = raw.get("data_dir")
        if isinstance(data_dir, str) and data_dir.strip():
            data["data_dir"] = Path(data_dir).expanduser()
        for key in _INT_FIELDS:
            value = raw.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                data[key] = value
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "DATA_DIR_ENV", "PoolOptions", "load_config", "save_config"]
