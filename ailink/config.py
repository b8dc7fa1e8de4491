"""
Hub configuration.

Values come from defaults, an optional JSON file deep-merged over them, and
environment variables (optionally seeded from a ``.env`` file, never
overriding variables that are already set).
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from ailink.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/ai_link.db"


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        if isinstance(data, dict):
            return data
        return {}
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a {cast.__name__}, got {raw!r}")


def load_dotenv_file(env_path: Optional[Path] = None) -> bool:
    """Load a .env file without overriding existing variables."""
    env_path = Path(env_path) if env_path else Path.cwd() / ".env"
    if not env_path.exists():
        return False
    from dotenv import load_dotenv
    load_dotenv(env_path, override=False)
    logger.debug(f"Loaded .env from {env_path}")
    return True


@dataclass
class HubConfig:
    """Settings for the store, scheduler, polling clients and HTTP host."""
    db_path: str = DEFAULT_DB_PATH
    api_key: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 3000
    scheduler_interval: float = 1.0
    poll_interval: float = 2.0
    lock_timeout: float = 10.0
    allow_result_overwrite: bool = False
    log_level: str = "INFO"
    log_json: bool = False
    log_dir: Optional[str] = None

    def __post_init__(self):
        if self.scheduler_interval <= 0:
            raise ConfigurationError("scheduler_interval must be positive")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if self.lock_timeout <= 0:
            raise ConfigurationError("lock_timeout must be positive")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port out of range: {self.port}")

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "HubConfig":
        """Load config from environment. Missing values use defaults."""
        load_dotenv_file(env_file)
        return cls(
            db_path=os.getenv("AI_LINK_DB_PATH", DEFAULT_DB_PATH),
            api_key=os.getenv("AI_LINK_API_KEY") or None,
            host=os.getenv("AI_LINK_HOST", "127.0.0.1"),
            port=_env_number("AI_LINK_PORT", 3000, int),
            scheduler_interval=_env_number("AI_LINK_SCHEDULER_INTERVAL", 1.0, float),
            poll_interval=_env_number("AI_LINK_POLL_INTERVAL", 2.0, float),
            lock_timeout=_env_number("AI_LINK_LOCK_TIMEOUT", 10.0, float),
            allow_result_overwrite=_env_bool("AI_LINK_ALLOW_RESULT_OVERWRITE", False),
            log_level=os.getenv("AI_LINK_LOG_LEVEL", "INFO"),
            log_json=_env_bool("AI_LINK_LOG_JSON", False),
            log_dir=os.getenv("AI_LINK_LOG_DIR") or None,
        )

    @classmethod
    def from_file(cls, path: Path) -> "HubConfig":
        """Load config from a JSON file merged over the defaults."""
        known = {f.name for f in fields(cls)}
        data = _load_json(Path(path))
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        merged = _deep_merge(asdict(cls()), {k: v for k, v in data.items() if k in known})
        return cls(**merged)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if redact and data.get("api_key"):
            data["api_key"] = "***"
        return data
