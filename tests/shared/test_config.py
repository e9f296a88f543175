# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for configuration loading.
"""

import tempfile
from pathlib import Path

import pytest

from revledger.shared.config import Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "REVLEDGER_CONFIG_DIR",
        "REVLEDGER_SECRET",
        "REVLEDGER_INGEST_URL",
        "REVLEDGER_LOG_DIR",
        "REVLEDGER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfigDefaults:
    """Test built-in defaults."""

    def test_defaults_without_config_file(self):
        """Test built-in defaults apply without config.yaml."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Config(config_dir=tmpdir)

            assert config.ingest.port == 8000
            assert config.ingest.secret == "secret"
            assert config.ingest.window_seconds == 5
            assert config.consumer.poll_interval == 5.0
            assert config.producer.fail_fast is True

            policy = config.backoff_policy()
            assert policy.base_delay == 0.5
            assert policy.max_attempts == 10

    def test_get_returns_default_for_missing_key(self):
        """Test missing dot-notation keys fall back to the default."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Config(config_dir=tmpdir)
            assert config.get("consumer.nope", 42) == 42
            assert config.get("consumer.poll_interval.deeper", "x") == "x"

    def test_get_path_expands_home(self):
        """Test ~ in configured paths is expanded."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Config(config_dir=tmpdir)
            assert config.get_path("paths.ledger_db") == Path.home() / ".revledger" / "ledger.db"


class TestConfigFile:
    """Test config.yaml handling."""

    def test_file_overrides_defaults(self):
        """Test config.yaml values are merged over defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "config.yaml").write_text("""
paths:
  log_dir: "{tmpdir}/log"

consumer:
  poll_interval: 1

backoff:
  base_delay: 0.1
  max_attempts: 3
""".format(tmpdir=tmpdir))

            config = Config(config_dir=tmpdir)

            assert config.get_path("paths.log_dir") == Path(tmpdir) / "log"
            # Untouched keys in the same section keep their defaults
            assert config.get("paths.offset_file") == "~/.revledger/processor_offset.json"
            assert config.consumer.poll_interval == 1.0
            assert config.backoff_policy().max_attempts == 3

    def test_invalid_section_falls_back_to_defaults(self):
        """Test a non-mapping section is ignored."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "config.yaml").write_text("""
consumer: "invalid"  # Not a dict
""")
            config = Config(config_dir=tmpdir)
            assert config.consumer.poll_interval == 5.0

    def test_unparseable_file_is_ignored(self):
        """Test broken YAML leaves the defaults in place."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "config.yaml").write_text("ingest: [unclosed\n")
            config = Config(config_dir=tmpdir)
            assert config.ingest.port == 8000


class TestConfigEnvironment:
    """Test environment overrides."""

    def test_env_overrides_file(self, monkeypatch):
        """Test environment variables win over config.yaml."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "config.yaml").write_text("ingest:\n  secret: from-file\n")
            monkeypatch.setenv("REVLEDGER_SECRET", "from-env")
            monkeypatch.setenv("REVLEDGER_INGEST_URL", "http://ingest:9000/liveEvent")

            config = Config(config_dir=tmpdir)

            assert config.ingest.secret == "from-env"
            assert config.producer.endpoint == "http://ingest:9000/liveEvent"

    def test_config_dir_from_env(self, monkeypatch):
        """Test REVLEDGER_CONFIG_DIR selects the config directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "config.yaml").write_text("ingest:\n  port: 9100\n")
            monkeypatch.setenv("REVLEDGER_CONFIG_DIR", tmpdir)

            config = Config()

            assert config.config_dir == Path(tmpdir)
            assert config.ingest.port == 9100
