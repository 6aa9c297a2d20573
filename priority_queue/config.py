"""
Configuration management for the priority queue.

Handles locating the state directory and loading, saving and updating
config.json inside it.
"""

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from priority_queue.models import QueueConfig, QueueSettings, utc_now
from priority_queue.atomic import AtomicFileWriter, FileLock
from priority_queue.exceptions import QueueLocked


# Environment variable overriding the state directory
ENV_VAR_NAME = "PRIORITY_QUEUE_HOME"

# Default configuration paths
DEFAULT_STATE_DIR = Path.home() / ".task-queue"
CONFIG_FILE_NAME = "config.json"
DEFAULT_CONFIG_FILE = DEFAULT_STATE_DIR / CONFIG_FILE_NAME

logger = logging.getLogger(__name__)


def get_state_dir(env_file: Optional[Path] = None) -> Path:
    """
    Resolve the state directory.

    Order: $PRIORITY_QUEUE_HOME (after loading a .env file from the
    working directory), then ~/.task-queue.

    Args:
        env_file: .env file to load (default: ./.env)
    """
    env_file = Path(env_file) if env_file else Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    path = os.environ.get(ENV_VAR_NAME)
    if path:
        return Path(path).expanduser()
    return DEFAULT_STATE_DIR


class ConfigManager:
    """
    Manages queue configuration.

    Handles loading configuration from disk, making updates,
    and persisting changes atomically.
    """

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to configuration file. Defaults to
                         <state dir>/config.json
        """
        self.config_file = Path(config_file) if config_file else get_state_dir() / CONFIG_FILE_NAME
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        # Lock file for config access
        self.lock = FileLock(self.config_file.with_suffix('.lock'))

        # Load or create default config
        self.config = self._load_config()

    @property
    def state_dir(self) -> Path:
        """Directory holding config and queue resources."""
        return self.config_file.parent

    @property
    def settings(self) -> QueueSettings:
        return self.config.settings

    def _load_config(self) -> QueueConfig:
        """Load configuration from file or create default."""
        data = AtomicFileWriter.read_json(self.config_file)

        if data is None:
            return QueueConfig()

        try:
            return QueueConfig.model_validate(data)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Invalid config file {self.config_file}, using defaults: {e}")
            return QueueConfig()

    def exists(self) -> bool:
        """True if the config file is on disk."""
        return self.config_file.exists()

    def save_config(self) -> None:
        """Save configuration atomically with locking."""
        if not self.lock.acquire(timeout=5):
            raise QueueLocked(f"Could not acquire config lock: {self.lock.lockfile}")

        try:
            self.config.updated_at = utc_now()
            AtomicFileWriter.write_json(self.config_file, self.config.model_dump(), indent=2)
        finally:
            self.lock.release()

    def reload(self) -> None:
        """Reload configuration from disk."""
        self.config = self._load_config()

    def update_settings(self, **kwargs) -> QueueSettings:
        """
        Update queue settings and save.

        Args:
            **kwargs: Settings to update (max_retries, retry_delay, ...)

        Returns:
            The updated settings

        Raises:
            ValueError: If a setting is unknown or its value is invalid
        """
        for key in kwargs:
            if key not in QueueSettings.model_fields:
                raise ValueError(f"Unknown setting: {key}")

        data = self.config.settings.model_dump()
        data.update(kwargs)
        self.config.settings = QueueSettings.model_validate(data)

        self.save_config()
        return self.config.settings
