"""Configuration management system."""

from __future__ import annotations

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from dotenv import load_dotenv

from .constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_USER_ID,
    DEFAULT_REPOSITORY_TYPE,
    DEFAULT_DATA_DIR,
    DEFAULT_DB_FILE,
    DEFAULT_BACKUP_DIR,
    DEFAULT_SEED_FIRST_NAME,
    DEFAULT_SEED_LAST_NAME,
    DEFAULT_SEED_USER_NAME,
    DEFAULT_SEED_PASSWORD,
    DEFAULT_SEED_CASH_BALANCE,
    LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_FORMAT,
)

logger = logging.getLogger(__name__)


class Settings:
    """Configuration management class for the ledger server.

    Settings are layered: built-in defaults, then an optional JSON
    configuration file, then environment variables.
    """

    def __init__(self, config_file: Optional[str] = None):
        """Initialize settings.

        Args:
            config_file: Optional path to configuration file
        """
        self._config: Dict[str, Any] = {}
        self._config_file = config_file
        self._load_default_config()

        if config_file:
            self.load_from_file(config_file)

        # Load from environment variables
        self._load_from_environment()

    def _load_default_config(self) -> None:
        """Load default configuration values."""
        self._config = {
            'server': {
                'host': DEFAULT_HOST,
                'port': DEFAULT_PORT,
                'default_user_id': DEFAULT_USER_ID
            },
            'repository': {
                'type': DEFAULT_REPOSITORY_TYPE,
                'csv': {
                    'data_directory': DEFAULT_DATA_DIR
                },
                'sqlite': {
                    'database_path': DEFAULT_DB_FILE
                },
                'memory': {}
            },
            'seed_user': {
                'first_name': DEFAULT_SEED_FIRST_NAME,
                'last_name': DEFAULT_SEED_LAST_NAME,
                'user_name': DEFAULT_SEED_USER_NAME,
                'password': DEFAULT_SEED_PASSWORD,
                'cash_balance': DEFAULT_SEED_CASH_BALANCE
            },
            'logging': {
                'level': DEFAULT_LOG_LEVEL,
                'file': LOG_FILE,
                'format': DEFAULT_LOG_FORMAT
            },
            'backup': {
                'directory': DEFAULT_BACKUP_DIR
            }
        }

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        # Repository configuration
        if os.getenv('LEDGER_REPOSITORY_TYPE'):
            self._config['repository']['type'] = os.getenv('LEDGER_REPOSITORY_TYPE')

        if os.getenv('LEDGER_DATA_DIR'):
            self._config['repository']['csv']['data_directory'] = os.getenv('LEDGER_DATA_DIR')

        if os.getenv('LEDGER_DB_PATH'):
            self._config['repository']['sqlite']['database_path'] = os.getenv('LEDGER_DB_PATH')

        # Server configuration
        if os.getenv('LEDGER_HOST'):
            self._config['server']['host'] = os.getenv('LEDGER_HOST')

        if os.getenv('LEDGER_PORT'):
            self._config['server']['port'] = int(os.getenv('LEDGER_PORT'))

        if os.getenv('LEDGER_DEFAULT_USER_ID'):
            self._config['server']['default_user_id'] = int(os.getenv('LEDGER_DEFAULT_USER_ID'))

        # Development mode
        if os.getenv('LEDGER_DEV', 'false').lower() == 'true':
            self._config['logging']['level'] = 'DEBUG'

    def load_from_file(self, config_file: str) -> None:
        """Load configuration from JSON file.

        Args:
            config_file: Path to configuration file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_file}")
            return

        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)

            # Merge with existing configuration
            self._merge_config(self._config, file_config)
            logger.info(f"Loaded configuration from: {config_file}")

        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration file {config_file}: {e}")

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Configuration key (supports dot notation, e.g., 'repository.type')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by key.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        # Navigate to the parent dictionary
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def get_repository_config(self) -> Dict[str, Any]:
        """Get repository configuration.

        Returns:
            Repository configuration dictionary, flattened with its 'type'
        """
        repo_type = self.get('repository.type', DEFAULT_REPOSITORY_TYPE)
        repo_config = self.get(f'repository.{repo_type}', {}) or {}

        return {
            'type': repo_type,
            **repo_config
        }

    def get_repository_type(self) -> str:
        return self.get('repository.type', DEFAULT_REPOSITORY_TYPE)

    def get_server_address(self) -> tuple[str, int]:
        """Get the (host, port) pair the server binds to."""
        return self.get('server.host', DEFAULT_HOST), int(self.get('server.port', DEFAULT_PORT))

    def get_default_user_id(self) -> int:
        return int(self.get('server.default_user_id', DEFAULT_USER_ID))

    def get_seed_user_config(self) -> Dict[str, Any]:
        return dict(self.get('seed_user', {}))

    def get_logging_config(self) -> Dict[str, Any]:
        return self.get('logging', {})

    def get_backup_config(self) -> Dict[str, Any]:
        return self.get('backup', {})

    def is_development_mode(self) -> bool:
        """Check if development mode is enabled.

        Returns:
            True if development mode is enabled
        """
        return os.getenv('LEDGER_DEV', 'false').lower() == 'true'


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure_system(config_file: Optional[str] = None, env_file: Optional[str] = None) -> Settings:
    """Configure the system with settings.

    Variables from a .env file are loaded first so they take part in the
    environment override step.

    Args:
        config_file: Optional path to configuration file
        env_file: Optional path to a .env file (defaults to ./.env)

    Returns:
        Configured settings instance
    """
    global _settings
    load_dotenv(env_file or ".env")
    _settings = Settings(config_file)
    return _settings
