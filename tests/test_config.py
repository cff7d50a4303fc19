"""Tests for config module"""

import yaml

from plant_monitor.config import (
    DEFAULT_BASE_URL,
    ApiConfig,
    Config,
    LoggingConfig,
    PollingConfig,
    get_env_float,
    get_env_int,
    load_config,
)


class TestConfigDataclasses:
    """Test configuration dataclasses"""

    def test_api_config_defaults(self):
        """Test ApiConfig defaults"""
        config = ApiConfig()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.timeout == 10.0
        assert config.max_retries == 2
        assert config.retry_delay == 1.0

    def test_polling_config_defaults(self):
        """Test PollingConfig defaults"""
        config = PollingConfig()
        assert config.latest == 3.0
        assert config.realtime == 5.0
        assert config.historical == 15.0
        assert config.history_limit == 20

    def test_logging_config_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file == ""

    def test_config_sections(self):
        config = Config()
        assert isinstance(config.api, ApiConfig)
        assert isinstance(config.polling, PollingConfig)
        assert isinstance(config.logging, LoggingConfig)


class TestEnvHelpers:
    def test_get_env_int(self, monkeypatch):
        monkeypatch.setenv("PM_TEST_INT", "5")
        assert get_env_int("PM_TEST_INT", 1) == 5
        monkeypatch.setenv("PM_TEST_INT", "five")
        assert get_env_int("PM_TEST_INT", 1) == 1
        assert get_env_int("PM_TEST_MISSING", 7) == 7

    def test_get_env_float(self, monkeypatch):
        monkeypatch.setenv("PM_TEST_FLOAT", "0.25")
        assert get_env_float("PM_TEST_FLOAT", 1.0) == 0.25
        monkeypatch.setenv("PM_TEST_FLOAT", "soon")
        assert get_env_float("PM_TEST_FLOAT", 1.0) == 1.0


class TestLoadConfig:
    """Test configuration loading"""

    def test_load_from_yaml(self, tmp_path, monkeypatch):
        for key in ("PLANT_MONITOR_API_URL", "PLANT_MONITOR_MAX_RETRIES", "PLANT_MONITOR_LOG_LEVEL"):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "api": {"base_url": "http://plant.example/api", "max_retries": 4},
                    "polling": {"latest": 1.5},
                    "logging": {"level": "DEBUG"},
                }
            )
        )

        config = load_config(str(path))

        assert config.api.base_url == "http://plant.example/api"
        assert config.api.max_retries == 4
        assert config.api.retry_delay == 1.0
        assert config.polling.latest == 1.5
        assert config.polling.historical == 15.0
        assert config.logging.level == "DEBUG"

    def test_empty_yaml_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PLANT_MONITOR_API_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("")

        config = load_config(str(path))

        assert config.api.base_url == DEFAULT_BASE_URL

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PLANT_MONITOR_API_URL", raising=False)
        config = load_config(str(tmp_path / "absent.yaml"))
        assert config.api.base_url == DEFAULT_BASE_URL
        assert config.polling.latest == 3.0

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"api": {"base_url": "http://from-file/api"}}))
        monkeypatch.setenv("PLANT_MONITOR_API_URL", "http://from-env/api")
        monkeypatch.setenv("PLANT_MONITOR_MAX_RETRIES", "0")
        monkeypatch.setenv("PLANT_MONITOR_RETRY_DELAY", "0.5")
        monkeypatch.setenv("PLANT_MONITOR_LOG_LEVEL", "WARNING")

        config = load_config(str(path))

        assert config.api.base_url == "http://from-env/api"
        assert config.api.max_retries == 0
        assert config.api.retry_delay == 0.5
        assert config.logging.level == "WARNING"

    def test_negative_env_retries_clamped(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PLANT_MONITOR_MAX_RETRIES", "-3")
        config = load_config(str(tmp_path / "absent.yaml"))
        assert config.api.max_retries == 0
