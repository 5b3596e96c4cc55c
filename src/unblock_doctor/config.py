"""Configuration management for unblock-doctor.

Settings live in ``settings.yaml`` inside the config directory. Host
records and private keys are not configuration; they belong to the
host directory in ``unblock_doctor.storage``.
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# csf treats a TTL of 0 as permanent; anything below a minute is a mistake.
MIN_WHITELIST_TTL = 60


@dataclass
class Settings:
    """Runtime settings with defaults matching the managed fleet."""

    ssh_user: str = "root"
    ssh_timeout: int = 30
    whitelist_ttl: int = 86400
    key_dir: str = str(Path(tempfile.gettempdir()) / "unblock-doctor-keys")
    db_path: str = "./data/unblock_doctor.db"
    report_expiration: int = 604800

    def effective_whitelist_ttl(self) -> int:
        """Whitelist TTL in seconds, floored at MIN_WHITELIST_TTL."""
        try:
            ttl = int(self.whitelist_ttl)
        except (TypeError, ValueError):
            logger.warning("Invalid whitelist_ttl %r, using minimum", self.whitelist_ttl)
            return MIN_WHITELIST_TTL
        return max(MIN_WHITELIST_TTL, ttl)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Loads and saves settings stored in YAML format."""

    def __init__(self, config_dir: Path | None = None) -> None:
        if config_dir is None:
            env_config = os.getenv("UNBLOCK_DOCTOR_CONFIG")
            if env_config:
                config_dir = Path(env_config).expanduser().resolve()
            else:
                config_dir = Path.home() / ".unblock-doctor"

        self.config_dir = config_dir
        self.settings_file = config_dir / "settings.yaml"
        self._ensure_config_dir()

    def _ensure_config_dir(self) -> None:
        """Create config directory and a default settings file if missing."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        if not self.settings_file.exists():
            self.save(Settings())

    def load(self) -> Settings:
        """Load settings, falling back to defaults on a malformed file."""
        try:
            with open(self.settings_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not read %s, using defaults: %s", self.settings_file, e)
            return Settings()

        if not isinstance(data, dict):
            logger.warning("Ignoring non-mapping settings file %s", self.settings_file)
            return Settings()
        return Settings.from_dict(data)

    def save(self, settings: Settings) -> None:
        """Save settings to the YAML file with owner-only permissions."""
        self.settings_file.touch(mode=0o600)
        with open(self.settings_file, "w") as f:
            yaml.safe_dump(asdict(settings), f)
