"""
Configuration management for the crawler.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigError


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_url: Optional[str] = None
    worker_count: int = 1
    politeness_delay: float = 2.0
    request_timeout: float = 30.0
    max_concurrent_requests: int = 10
    user_agent: str = 'url-crawler/1.0'
    max_pages: Optional[int] = None
    max_depth: Optional[int] = None
    keep_fragments: bool = False
    match_scheme: bool = False
    idle_backoff: float = 0.05
    termination_grace: float = 0.05

    def validate(self):
        """Validate crawler settings."""
        if self.worker_count < 1:
            raise ConfigError("worker_count must be at least 1")

        if self.politeness_delay < 0:
            raise ConfigError("politeness_delay must be non-negative")

        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

        if self.max_concurrent_requests < 1:
            raise ConfigError("max_concurrent_requests must be at least 1")

        if self.max_pages is not None and self.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")

        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigError("max_depth must be non-negative")

        if self.idle_backoff < 0 or self.termination_grace < 0:
            raise ConfigError("idle_backoff and termination_grace must be non-negative")


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: Optional[str] = None
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """Build a config from parsed YAML; missing sections use defaults."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        return cls(
            crawler=_section(CrawlerConfig, data.get('crawler')),
            logging=_section(LoggingConfig, data.get('logging')),
            monitoring=_section(MonitoringConfig, data.get('monitoring'))
        )

    def validate(self):
        """Validate configuration values."""
        self.crawler.validate()

        if not isinstance(logging.getLevelName(self.logging.level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.logging.level}")


def _section(section_cls, values: Optional[Dict[str, Any]]):
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ConfigError(f"Section for {section_cls.__name__} must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {section_cls.__name__} keys: {', '.join(sorted(unknown))}")
    return section_cls(**values)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        self._config = Config.from_dict(config_data)
        self._config.validate()
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
