"""Client settings management for wireftp.

Provides ClientSettings dataclass and SettingsManager for persistence.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from wireftp.config.paths import get_settings_path
from wireftp.ftp.exceptions import FTPValidationError
from wireftp.utils.validators import validate_port, validate_timeout


@dataclass
class ClientSettings:
    """Engine tunables and remembered connection defaults."""

    # Deadlines (seconds)
    timeout: float = 30.0
    connect_timeout: float = 10.0

    # Control socket
    keep_alive: bool = True
    keep_alive_interval: int = 10
    encoding: str = "utf-8"

    # Data transfers
    block_size: int = 8192
    binary_mode: bool = True
    trust_pasv_host: bool = True
    lenient_transfer_completion: bool = False
    transfer_grace_period: float = 5.0
    list_grace_period: float = 3.0

    # Logging
    debug: bool = False

    # Last successful connection (CLI defaults)
    last_host: str = ""
    last_port: int = 21
    last_username: str = "anonymous"

    def __post_init__(self):
        """Validate settings after initialization."""
        for name in ("timeout", "connect_timeout"):
            is_valid, error = validate_timeout(getattr(self, name))
            if not is_valid:
                raise FTPValidationError(name, error)
        is_valid, error = validate_port(self.last_port)
        if not is_valid:
            raise FTPValidationError("last_port", error)
        if self.block_size <= 0:
            raise FTPValidationError("block_size", "Block size must be positive")
        if self.transfer_grace_period < 0 or self.list_grace_period < 0:
            raise FTPValidationError("grace_period", "Grace periods cannot be negative")

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)


class SettingsManager:
    """Manages client settings persistence."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[ClientSettings] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    def load(self) -> ClientSettings:
        """
        Load settings from disk.

        Returns:
            ClientSettings instance (defaults if file not found or invalid)
        """
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._settings = ClientSettings.from_dict(data)
            except (json.JSONDecodeError, IOError, TypeError, FTPValidationError):
                # Invalid or unreadable file, use defaults
                self._settings = ClientSettings()
        else:
            self._settings = ClientSettings()

        return self._settings

    def save(self, settings: ClientSettings) -> None:
        """
        Persist settings to disk.

        Args:
            settings: Settings to save
        """
        self._settings = settings

        # Ensure parent directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)

    def reset(self) -> ClientSettings:
        """
        Reset to default settings.

        Returns:
            Default ClientSettings instance
        """
        self._settings = ClientSettings()

        # Remove existing file
        if self._config_path.exists():
            self._config_path.unlink()

        return self._settings

    def update(self, **kwargs) -> ClientSettings:
        """
        Update specific settings fields.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated ClientSettings instance
        """
        if self._settings is None:
            self.load()

        for key, value in kwargs.items():
            if hasattr(self._settings, key):
                setattr(self._settings, key, value)

        self.save(self._settings)
        return self._settings
