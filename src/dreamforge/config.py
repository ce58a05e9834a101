"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AnthropicConfig(BaseModel):
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = "claude-3-haiku-20240307"
    max_retries: int = 0
    timeout: int = 30
    temperature: float = 0.1
    router_max_tokens: int = 150
    verifier_max_tokens: int = 300
    narrator_max_tokens: int = 600


class VisionConfig(BaseModel):
    api_key: str = ""  # empty -> demo responses
    base_url: str = "https://api.moondream.ai/v1"
    timeout: int = 60


class StorageConfig(BaseModel):
    enabled: bool = True
    db_path: str = "./data/dreamforge.db"


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class AnalyticsConfig(BaseModel):
    summary_window_days: int = Field(default=7, ge=1)
    cost_per_call_usd: float = 0.002
    history_limit: int = Field(default=10, ge=1)


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    environment: Literal["development", "test", "production"] = "production"
    anthropic: Optional[AnthropicConfig] = None
    vision: VisionConfig = Field(default_factory=VisionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)

    @property
    def llm_configured(self) -> bool:
        """True when an Anthropic credential is available for routing/verification."""
        return self.anthropic is not None and bool(self.anthropic.api_key.strip())

    @property
    def exposes_error_details(self) -> bool:
        return self.environment in ("development", "test")


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values.

    Unset variables resolve to an empty string so optional credentials
    simply read as "not configured".
    """

    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")
    data = yaml.safe_load(_interpolate_env_vars(raw_text)) or {}

    return AppConfig(**data)
