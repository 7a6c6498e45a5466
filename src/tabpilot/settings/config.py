"""Configuration loader for tabpilot using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (TABPILOT_* with __ for nesting)
  3. settings.local.toml
  4. settings.{env}.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("TABPILOT_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "TABPILOT_ENV"
DEFAULT_ENV = "local"

MIN_STEPS = 1
MAX_STEPS = 200


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def clamp_max_steps(value: int) -> int:
    """Clamp a step budget into the supported ``[1, 200]`` range."""
    return max(MIN_STEPS, min(MAX_STEPS, int(value)))


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class LLMSettings(BaseSettings):
    """Chat-completion endpoint used by the planner, plan generator and done checker."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_LLM__")

    provider: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    planner_temperature: float = 0.2
    plan_temperature: float = 0.2
    done_checker_temperature: float = 0.0
    max_tokens: int = 1200
    timeout_sec: float = 60.0
    max_retries: int = 2
    retry_base_delay: float = 1.0


class AgentSettings(BaseSettings):
    """Run-loop budgets and timings."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_AGENT__")

    max_steps: int = 12
    settle_ms: int = 450
    navigation_settle_ms: int = 700
    open_url_timeout_ms: int = 15_000
    open_url_poll_ms: int = 250
    repeat_window: int = 6
    repeat_threshold: int = 2
    history_limit: int = 60
    planner_history: int = 20
    done_checker_recent: int = 8
    log_capacity: int = 200
    approval_mode: str = "ask_first"  # ask_first | act_without_asking

    @field_validator("max_steps")
    @classmethod
    def _clamp_steps(cls, v: int) -> int:
        return clamp_max_steps(v)

    @field_validator("approval_mode")
    @classmethod
    def _check_approval_mode(cls, v: str) -> str:
        if v not in ("ask_first", "act_without_asking"):
            raise ValueError(f"approval_mode must be ask_first or act_without_asking, got {v!r}")
        return v


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_BROWSER__")

    headless: bool = False
    channel: str = ""
    user_data_dir: str = "data/browser-profile"
    cdp_url: str = ""
    viewport_width: int = 1280
    viewport_height: int = 860


class StoreSettings(BaseSettings):
    """Durable key-value storage for runtime state."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_STORE__")

    backend: str = "sqlite"  # memory | sqlite
    sqlite_path: str = "data/tabpilot.db"


class RelaySettings(BaseSettings):
    """Remote task relay connection."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_RELAY__")

    endpoint: str = ""
    device_id: str = ""
    auth_token: str = ""
    wait_ms: int = 25_000
    error_backoff_sec: float = 2.0


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="TABPILOT_API__")

    host: str = "127.0.0.1"
    port: int = 8765
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root tabpilot settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="TABPILOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    llm: LLMSettings = Field(default_factory=LLMSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths against project_root."""
        root = self.project_root
        if not Path(self.store.sqlite_path).is_absolute():
            self.store.sqlite_path = str(root / self.store.sqlite_path)
        if self.browser.user_data_dir and not Path(self.browser.user_data_dir).is_absolute():
            self.browser.user_data_dir = str(root / self.browser.user_data_dir)
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
