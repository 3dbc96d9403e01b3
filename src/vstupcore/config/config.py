"""
Configuration management for VstupCore using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class CrawlerConfig(BaseModel):
    """Crawler configuration."""

    base_url: str = Field(default="https://vstup.osvita.ua", description="Site root, also the cities page.")
    api_url: str = Field(default="https://vstup.osvita.ua/api/", description="Admissions API endpoint.")
    proxies_file: Path = Field(
        default=Path("proxies.txt"),
        description="Proxy credentials, one host:port:username:password per line.",
    )
    timeout: float = Field(default=30.0, gt=0, description="HTTP request timeout in seconds.")
    capital_city: Optional[str] = Field(
        default="Київ",
        description="Only crawl universities of the city with this name. None crawls every city.",
    )
    master_marker: str = Field(default="Магістр", description="Qualification label of the offers to keep.")
    applications_last: int = Field(default=10, description="Value of the 'last' field sent to the admissions API.")
    universities_floor: int = Field(default=100, ge=0, description="Initial estimate of the universities total.")
    offers_floor: int = Field(default=500, ge=0, description="Initial estimate of the offers total.")
    applications_floor: int = Field(default=1000, ge=0, description="Initial estimate of the applications total.")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class RetryConfig(BaseModel):
    """Backoff schedule of the retry orchestrator, in milliseconds."""

    base_delay_ms: float = 1000.0
    growth_factor: float = 1.5
    max_delay_ms: float = 10000.0
    jitter_ms: tuple[int, int] = (500, 2000)
    blocked_delay_ms: float = 5000.0
    blocked_step_ms: float = 2000.0
    blocked_jitter_ms: tuple[int, int] = (1000, 5000)
    timeout_delay_ms: float = 2000.0
    timeout_step_ms: float = 1000.0
    timeout_jitter_ms: tuple[int, int] = (500, 2000)

    @model_validator(mode="after")
    def check_jitter_ranges(self) -> "RetryConfig":
        for name in ("jitter_ms", "blocked_jitter_ms", "timeout_jitter_ms"):
            low, high = getattr(self, name)
            if low < 0 or high <= low:
                raise ValueError(f"{name} must be a non-empty [low, high) range")
        return self


class SQLiteConfig(BaseModel):
    """Configuration for the SQLite record store."""

    db_path: Path = Field(
        default_factory=lambda: Path.home() / ".vstupcore" / "vstup.db",
        description="SQLite database file path",
    )
    pool_size: int = Field(default=2, ge=1, description="Size of the connection pool.")
    wal_mode: bool = Field(default=True, description="Enable Write-Ahead Logging.")

    @field_validator("db_path", mode="before")
    @classmethod
    def ensure_db_directory(cls, v: Any) -> Path:
        """Ensure database directory exists."""
        path = Path(v) if not isinstance(v, Path) else v
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: int | None = Field(default=None, description="Port for Prometheus metrics exporter.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "VstupCore"
    version: str = "0.1.0"
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    storage: SQLiteConfig = Field(default_factory=SQLiteConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="VSTUP_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "config.yaml", current_dir / "config.yml"):
        if path.exists():
            return path
    return None


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from ``path``, a config file in the CWD, or defaults."""
    path = path or find_config_file()
    if path is None:
        log.info("No config file found. Using default settings.")
        return Config()
    return Config.from_yaml(path)
