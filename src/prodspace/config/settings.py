"""
config/settings.py — prodspace Runtime Settings

Merges config.yaml (defaults/structure) with .env (secrets).
Pydantic-powered — all fields are validated and typed.

  - TimelineConfig rejects windows that are empty or leave the day, and
    snap granularities that do not tile an hour
  - ClockConfig rejects non-positive tick periods
  - validate_all() performs cross-field startup validation and raises
    ConfigError with a human-readable message listing every problem found
  - load_settings() respects the PRODSPACE_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading as _threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class TimelineConfig(BaseModel):
    """Geometry of the day timeline and the drop calibration."""
    start_hour: int = 6
    end_hour: int = 22
    hour_height: float = 60.0
    min_box_height: float = 32.0
    top_padding: float = 1.0
    snap_minutes: int = 30
    drop_padding: float = 270.0
    default_estimate_minutes: int = 30

    @field_validator("start_hour", "end_hour")
    @classmethod
    def _hour_in_day(cls, v: int) -> int:
        if not (0 <= v <= 24):
            raise ValueError("timeline hours must be between 0 and 24")
        return v

    @field_validator("hour_height", "min_box_height")
    @classmethod
    def _positive_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeline sizes must be > 0")
        return v

    @field_validator("snap_minutes")
    @classmethod
    def _snap_tiles_hour(cls, v: int) -> int:
        if v < 1 or 60 % v != 0:
            raise ValueError("timeline.snap_minutes must be a positive divisor of 60")
        return v

    @field_validator("default_estimate_minutes")
    @classmethod
    def _positive_estimate(cls, v: int) -> int:
        if v < 1:
            raise ValueError("timeline.default_estimate_minutes must be >= 1")
        return v


class ClockConfig(BaseModel):
    tick_seconds: float = 60.0
    focus_refresh_seconds: float = 60.0
    unscheduled_poll_seconds: float = 30.0

    @field_validator("tick_seconds", "focus_refresh_seconds", "unscheduled_poll_seconds")
    @classmethod
    def _positive_period(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("clock periods must be > 0 seconds")
        return v


class StoreConfig(BaseModel):
    url: str = ""
    user_id: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    prodspace runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets from .env ---------------------------------------------------
    store_key: Optional[str] = Field(default=None, alias="PRODSPACE_STORE_KEY")

    # -- Structured config (from config.yaml) --------------------------------
    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    clock: ClockConfig = Field(default_factory=ClockConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("timeline", mode="before")
    @classmethod
    def _coerce_timeline(cls, v: Any) -> Any:
        if v is None:
            return TimelineConfig()
        return TimelineConfig(**v) if isinstance(v, dict) else v

    @field_validator("clock", mode="before")
    @classmethod
    def _coerce_clock(cls, v: Any) -> Any:
        if v is None:
            return ClockConfig()
        return ClockConfig(**v) if isinstance(v, dict) else v

    @field_validator("store", mode="before")
    @classmethod
    def _coerce_store(cls, v: Any) -> Any:
        if v is None:
            return StoreConfig()
        return StoreConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        if v is None:
            return LoggingConfig()
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems that a single field can't see.
        """
        errors: list[str] = []
        tl = self.timeline

        # ── Visible window must be non-empty ─────────────────────────────────
        if tl.end_hour <= tl.start_hour:
            errors.append(
                f"timeline.end_hour ({tl.end_hour}) must be greater than "
                f"timeline.start_hour ({tl.start_hour})."
            )

        # ── The minimum box must fit inside the window ──────────────────────
        window_px = (tl.end_hour - tl.start_hour) * tl.hour_height
        if tl.min_box_height > window_px > 0:
            errors.append(
                f"timeline.min_box_height ({tl.min_box_height}) is taller than "
                f"the whole visible window ({window_px})."
            )

        # ── A remote store needs its key ─────────────────────────────────────
        if self.store.url and not self.store_key:
            errors.append(
                "store.url is set but PRODSPACE_STORE_KEY is missing. "
                "Add it to your .env file or clear store.url."
            )

        # ── Report all errors together ───────────────────────────────────────
        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nprodspace startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()

_KNOWN_SECTIONS = {"timeline", "clock", "store", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. PRODSPACE_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("PRODSPACE_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def _env_overrides() -> dict[str, dict[str, Any]]:
    """Section values set through the environment, e.g. TIMELINE__START_HOUR=7."""
    from_env = Settings()
    overrides: dict[str, dict[str, Any]] = {}
    for section in _KNOWN_SECTIONS & from_env.model_fields_set:
        sub = getattr(from_env, section)
        if sub.model_fields_set:
            overrides[section] = sub.model_dump(include=sub.model_fields_set)
    return overrides


def _build_settings(path: Path) -> Settings:
    """
    YAML sections with environment values laid over them key by key.

    YAML has to be passed as init kwargs, which pydantic-settings ranks above
    the environment, so the merge happens here.
    """
    sections = {k: v for k, v in _load_yaml(path).items() if k in _KNOWN_SECTIONS}
    for section, values in _env_overrides().items():
        current = sections.get(section)
        if current is None or isinstance(current, dict):
            sections[section] = {**(current or {}), **values}
    return Settings(**sections)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from config.yaml, .env and the environment."""
    global _singleton
    instance = _build_settings(_resolve_config_path(config_path))
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading from the default config
    path on first use.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = _build_settings(_resolve_config_path(None))
        return _singleton
