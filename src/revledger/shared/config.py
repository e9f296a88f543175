# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Configuration management for the revenue pipeline.

Loads ``config.yaml`` from the config directory (default ``~/.revledger``),
merges it over built-in defaults and applies environment overrides.
"""

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .backoff import BackoffPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".revledger"

DEFAULTS: Dict[str, Any] = {
    "paths": {
        "log_dir": "~/.revledger/log",
        "offset_file": "~/.revledger/processor_offset.json",
        "ledger_db": "~/.revledger/ledger.db",
        "source_file": "events.jsonl",
    },
    "ingest": {
        "host": "127.0.0.1",
        "port": 8000,
        "secret": "secret",
        "window_seconds": 5,
    },
    "producer": {
        "endpoint": "http://localhost:8000/liveEvent",
        "timeout": 10.0,
        "poll_interval": 1.0,
        "restart_delay": 1.0,
        "coalesce_window": 0.5,
        "fail_fast": True,
    },
    "consumer": {
        "poll_interval": 5.0,
    },
    "backoff": {
        "base_delay": 0.5,
        "max_attempts": 10,
    },
    "logging": {
        "level": "INFO",
    },
}

ENV_OVERRIDES = {
    "REVLEDGER_SECRET": "ingest.secret",
    "REVLEDGER_INGEST_URL": "producer.endpoint",
    "REVLEDGER_LOG_DIR": "paths.log_dir",
    "REVLEDGER_LOG_LEVEL": "logging.level",
}


@dataclass
class IngestConfig:
    """Ingest point settings."""
    host: str
    port: int
    secret: str
    window_seconds: int


@dataclass
class ProducerConfig:
    """Reliable producer settings."""
    endpoint: str
    timeout: float
    poll_interval: float
    restart_delay: float
    coalesce_window: float
    fail_fast: bool = True


@dataclass
class ConsumerConfig:
    """Offset-tracked consumer settings."""
    poll_interval: float


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class Config:
    """Pipeline configuration container."""

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_dir: Directory holding config.yaml (falls back to
                REVLEDGER_CONFIG_DIR, then ~/.revledger)
        """
        env_dir = os.environ.get("REVLEDGER_CONFIG_DIR")
        self.config_dir = Path(config_dir or env_dir or DEFAULT_CONFIG_DIR).expanduser()
        self.config_path = self.config_dir / "config.yaml"
        self._data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

        if self.config_path.exists():
            self.load_from_file()
        self.load_from_env()

    def load_from_file(self) -> None:
        """Merge config.yaml over the defaults. Invalid files are ignored."""
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config file {self.config_path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.config_path}: top level is not a mapping")
            return

        for section, values in data.items():
            default = DEFAULTS.get(section)
            if isinstance(default, dict) and not isinstance(values, dict):
                logger.warning(f"Ignoring invalid '{section}' section in {self.config_path}")
                continue
            if isinstance(values, dict) and isinstance(self._data.get(section), dict):
                _deep_merge(self._data[section], values)
            else:
                self._data[section] = values

    def load_from_env(self) -> None:
        """Apply environment variable overrides."""
        for env_name, key in ENV_OVERRIDES.items():
            if value := os.environ.get(env_name):
                self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        value: Any = self._data
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dot-notation key."""
        parts = key.split(".")
        target = self._data
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    def get_path(self, key: str) -> Path:
        """Get a path value with ``~`` expanded."""
        value = self.get(key)
        if value is None:
            raise KeyError(f"No path configured for {key}")
        return Path(value).expanduser()

    @property
    def ingest(self) -> IngestConfig:
        section = self.get("ingest")
        return IngestConfig(
            host=str(section["host"]),
            port=int(section["port"]),
            secret=str(section["secret"]),
            window_seconds=int(section["window_seconds"]),
        )

    @property
    def producer(self) -> ProducerConfig:
        section = self.get("producer")
        return ProducerConfig(
            endpoint=str(section["endpoint"]),
            timeout=float(section["timeout"]),
            poll_interval=float(section["poll_interval"]),
            restart_delay=float(section["restart_delay"]),
            coalesce_window=float(section["coalesce_window"]),
            fail_fast=bool(section.get("fail_fast", True)),
        )

    @property
    def consumer(self) -> ConsumerConfig:
        return ConsumerConfig(poll_interval=float(self.get("consumer.poll_interval")))

    def backoff_policy(self) -> BackoffPolicy:
        """Build the shared backoff policy from the ``backoff`` section."""
        return BackoffPolicy(
            base_delay=float(self.get("backoff.base_delay")),
            max_attempts=int(self.get("backoff.max_attempts")),
        )
