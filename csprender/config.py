import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

ENV_VAR = "CSPRENDER_ENV"

_config_path_override: Path | None = None


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def set_config_path(path: Path | str | None) -> None:
    """Override the config file used by get_settings (e.g. from the CLI)."""
    global _config_path_override
    _config_path_override = Path(path) if path is not None else None


def get_config_path() -> Path:
    """Return the config file path.

    An explicit override wins; otherwise app.<CSPRENDER_ENV>.yaml, or
    app.yaml when no environment is set.
    """
    if _config_path_override is not None:
        return _config_path_override

    env = os.environ.get(ENV_VAR, "").strip().lower()
    if env and env != "production":
        return Path.cwd() / f"app.{env}.yaml"
    return Path.cwd() / "app.yaml"


def load_app_config() -> dict:
    """Load and parse the YAML config with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"{config_path.name} not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class CSPConfig(BaseModel):
    """Content Security Policy reconciliation configuration."""

    enabled: bool = True
    nonce_bytes: int = Field(default=16, ge=16)
    content_types: list[str] = ["text/html"]


class RenderConfig(BaseModel):
    """Page rendering configuration."""

    head_html: str | None = None
    head_html_file: Path | None = None

    def resolve_head_html(self) -> str | None:
        """Return the head markup to inject, preferring inline markup over the file."""
        if self.head_html:
            return self.head_html
        if self.head_html_file is not None:
            return self.head_html_file.read_text(encoding="utf-8")
        return None


class LogfireConfig(BaseModel):
    """Pydantic Logfire configuration."""

    enabled: bool = False
    service_name: str = "csprender"
    environment: str | None = None
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "info"

    csp: CSPConfig = CSPConfig()
    render: RenderConfig = RenderConfig()
    logfire: LogfireConfig = LogfireConfig()


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and the YAML config file."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    updates = {}

    for key in ("debug", "log_level"):
        if key in app_config:
            updates[key] = app_config[key]

    if "csp" in app_config:
        updates["csp"] = CSPConfig(**app_config["csp"])

    if "render" in app_config:
        updates["render"] = RenderConfig(**app_config["render"])

    if "logfire" in app_config:
        updates["logfire"] = LogfireConfig(**app_config["logfire"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


def clear_settings_cache() -> None:
    get_settings.cache_clear()
