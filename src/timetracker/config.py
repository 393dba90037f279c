"""
Configuration management
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".timetracker"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "TIMETRACKER_"


@dataclass
class Config:
    """Application configuration"""
    database_url: str = ""                # SQLAlchemy URL, empty -> SQLite in CONFIG_DIR
    app_url: str = "http://localhost:8000"  # Public URL used for the OAuth callback
    secret_key: str = "timetracker-secret-key-change-in-production"  # JWT signing key
    encryption_key: str = ""              # Key for stored OAuth tokens, empty -> secret_key
    request_timeout: float = 30.0         # Seconds per Jira request
    client_cache_size: int = 32           # Signed HTTP clients kept per process
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from CONFIG_FILE, then apply environment overrides"""
        data = {}
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable config file {CONFIG_FILE}: {e}")
                data = {}

        config = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        config.apply_env()
        return config

    def apply_env(self):
        """Override fields from TIMETRACKER_<FIELD> environment variables"""
        for f in fields(self):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            current = getattr(self, f.name)
            if isinstance(current, bool):
                value = raw.lower() in ("1", "true", "yes", "on")
            elif isinstance(current, int):
                value = int(raw)
            elif isinstance(current, float):
                value = float(raw)
            else:
                value = raw
            setattr(self, f.name, value)

    def save(self):
        """Save configuration"""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, 'w') as f:
            json.dump(asdict(self), f, indent=2)
        # Owner read/write only, the file holds signing keys
        CONFIG_FILE.chmod(0o600)

    def get_database_url(self) -> str:
        """Database URL, defaulting to a SQLite file under CONFIG_DIR"""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{CONFIG_DIR / 'timetracker.db'}"

    def get_encryption_key(self) -> str:
        """Key used for token encryption"""
        return self.encryption_key or self.secret_key

    def get_callback_url(self) -> str:
        """Absolute URL of the Jira OAuth callback route"""
        return f"{self.app_url.rstrip('/')}/jiraoauthcallback"


def get_config() -> Config:
    """Dependency for getting the current configuration"""
    return Config.load()
