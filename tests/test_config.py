"""Tests for ailink/config.py"""

import json

import pytest

from ailink.config import HubConfig, _deep_merge
from ailink.errors import ConfigurationError, ValidationError

ENV_VARS = [
    "AI_LINK_DB_PATH", "AI_LINK_API_KEY", "AI_LINK_HOST", "AI_LINK_PORT",
    "AI_LINK_SCHEDULER_INTERVAL", "AI_LINK_POLL_INTERVAL", "AI_LINK_LOCK_TIMEOUT",
    "AI_LINK_ALLOW_RESULT_OVERWRITE", "AI_LINK_LOG_LEVEL", "AI_LINK_LOG_JSON", "AI_LINK_LOG_DIR",
]


@pytest.fixture
def clean_env(monkeypatch, temp_dir):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a stray .env in the working directory out of the picture
    monkeypatch.chdir(temp_dir)
    return monkeypatch


class TestFromEnv:
    """Test HubConfig.from_env()."""

    def test_defaults(self, clean_env):
        """Should use defaults when nothing is set."""
        config = HubConfig.from_env()

        assert config.db_path == "data/ai_link.db"
        assert config.api_key is None
        assert config.port == 3000
        assert config.scheduler_interval == 1.0
        assert config.poll_interval == 2.0
        assert config.allow_result_overwrite is False

    def test_reads_environment(self, clean_env):
        """Should read every AI_LINK_* variable."""
        clean_env.setenv("AI_LINK_DB_PATH", "/tmp/bus.db")
        clean_env.setenv("AI_LINK_API_KEY", "k")
        clean_env.setenv("AI_LINK_PORT", "8080")
        clean_env.setenv("AI_LINK_SCHEDULER_INTERVAL", "0.5")
        clean_env.setenv("AI_LINK_ALLOW_RESULT_OVERWRITE", "true")
        clean_env.setenv("AI_LINK_LOG_JSON", "1")

        config = HubConfig.from_env()

        assert config.db_path == "/tmp/bus.db"
        assert config.api_key == "k"
        assert config.port == 8080
        assert config.scheduler_interval == 0.5
        assert config.allow_result_overwrite is True
        assert config.log_json is True

    def test_invalid_number_raises(self, clean_env):
        """Should raise ConfigurationError for a non-numeric port."""
        clean_env.setenv("AI_LINK_PORT", "eighty")
        with pytest.raises(ConfigurationError):
            HubConfig.from_env()

    def test_configuration_error_is_validation(self):
        """Should report configuration problems with the Validation kind."""
        assert issubclass(ConfigurationError, ValidationError)

    def test_dotenv_does_not_override(self, clean_env, temp_dir):
        """Should load .env values without overriding existing variables."""
        env_file = temp_dir / "custom.env"
        env_file.write_text("AI_LINK_PORT=4000\nAI_LINK_HOST=0.0.0.0\n")
        clean_env.setenv("AI_LINK_PORT", "5000")

        config = HubConfig.from_env(env_file)

        assert config.port == 5000
        assert config.host == "0.0.0.0"


class TestValidation:
    """Test HubConfig.__post_init__."""

    def test_non_positive_interval(self):
        """Should reject a zero scheduler interval."""
        with pytest.raises(ConfigurationError):
            HubConfig(scheduler_interval=0)

    def test_port_range(self):
        """Should reject ports outside 1-65535."""
        with pytest.raises(ConfigurationError):
            HubConfig(port=70000)


class TestFromFile:
    """Test HubConfig.from_file()."""

    def test_merges_over_defaults(self, temp_dir):
        """Should take file values and keep defaults for the rest."""
        path = temp_dir / "ailink.json"
        path.write_text(json.dumps({"port": 9000, "unknown_key": True}))

        config = HubConfig.from_file(path)

        assert config.port == 9000
        assert config.host == "127.0.0.1"

    def test_missing_file_gives_defaults(self, temp_dir):
        """Should fall back to defaults when the file does not exist."""
        assert HubConfig.from_file(temp_dir / "absent.json") == HubConfig()

    def test_invalid_json_raises(self, temp_dir):
        """Should raise ConfigurationError on malformed JSON."""
        path = temp_dir / "bad.json"
        path.write_text("{port: 1")
        with pytest.raises(ConfigurationError):
            HubConfig.from_file(path)


class TestHelpers:
    """Test config helpers."""

    def test_deep_merge(self):
        """Should merge nested dictionaries."""
        merged = _deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}

    def test_to_dict_redacts_api_key(self):
        """Should hide the API key unless asked not to."""
        config = HubConfig(api_key="secret")
        assert config.to_dict()["api_key"] == "***"
        assert config.to_dict(redact=False)["api_key"] == "secret"
