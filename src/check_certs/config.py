#!/usr/bin/env python3
"""
Configuration loading (YAML) and logging setup
"""
import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .policy import DEFAULT_CONCURRENCY, WarningPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ConfigError(Exception):
    """Raised when the configuration file cannot be used"""


class WarnWindow(BaseModel):
    years: int = 0
    months: int = 0
    days: int = 0


class ScannerSettings(BaseModel):
    concurrency: int = DEFAULT_CONCURRENCY
    check_signature_algorithm: bool = True
    timeout_seconds: Optional[float] = None
    ca_file: Optional[str] = None
    warn: WarnWindow = Field(default_factory=WarnWindow)


class ReportSettings(BaseModel):
    enabled: bool = True
    path: str = "results.csv"


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class MattermostSettings(BaseModel):
    webhook_url: Optional[str] = None
    username: str = "check-certs"
    icon_emoji: str = ":lock:"

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url) and "your-mattermost" not in self.webhook_url


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    mattermost: MattermostSettings = Field(default_factory=MattermostSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def warning_policy(self) -> WarningPolicy:
        return WarningPolicy.resolve(
            warn_years=self.scanner.warn.years,
            warn_months=self.scanner.warn.months,
            warn_days=self.scanner.warn.days,
            check_signature_algorithm=self.scanner.check_signature_algorithm,
            concurrency=self.scanner.concurrency,
        )


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from a YAML file

    A missing default config file means built-in defaults. An explicitly
    given file must exist.

    Args:
        path: Path to config file, or None for config/config.yaml

    Raises:
        ConfigError: file unreadable, not YAML, or fails validation
    """
    config_path = path or DEFAULT_CONFIG_PATH
    if not os.path.exists(config_path):
        if path:
            raise ConfigError(f"Config file not found: {config_path}")
        return AppConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a mapping")

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e
    logger.info(f"Loaded configuration from {config_path}")
    return config


def setup_logging(settings: LoggingSettings, verbose: bool = False):
    handlers = [logging.StreamHandler()]
    if settings.file:
        handlers.append(logging.FileHandler(settings.file))
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
