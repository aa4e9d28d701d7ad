"""
Root conftest — isolate prodspace environment variables so that Settings()
in tests is not affected by a developer's shell or .env file.
"""
import os

import pytest

_ENV_VARS = [
    "PRODSPACE_CONFIG",
    "PRODSPACE_STORE_KEY",
]
_SECTION_PREFIXES = ("TIMELINE__", "CLOCK__", "STORE__", "LOGGING__")


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch):
    """Remove prodspace env vars for every test and disable .env loading so
    local developer .env files don't leak into Settings()."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.upper().startswith(_SECTION_PREFIXES):
            monkeypatch.delenv(var, raising=False)

    import prodspace.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    monkeypatch.setattr(settings_module, "_singleton", None)
