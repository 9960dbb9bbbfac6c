"""Repository factory for creating repository instances."""

from __future__ import annotations

from typing import Dict, Any
import logging

from .base_repository import BaseRepository
from .memory_repository import InMemoryRepository
from .csv_repository import CSVRepository
from .sqlite_repository import SQLiteRepository

logger = logging.getLogger(__name__)


class RepositoryFactory:
    """Factory for creating repository instances based on configuration.

    This factory allows the server to switch between ledger store
    implementations (memory, CSV, SQLite) based on configuration settings.
    """

    _repositories: Dict[str, type] = {
        'memory': InMemoryRepository,
        'csv': CSVRepository,
        'sqlite': SQLiteRepository,
    }

    # Constructor arguments each repository type accepts
    _accepted_kwargs: Dict[str, tuple] = {
        'memory': (),
        'csv': ('data_directory',),
        'sqlite': ('database_path',),
    }

    @classmethod
    def create_repository(cls, repository_type: str = 'sqlite', **kwargs) -> BaseRepository:
        """Create a repository instance based on type.

        Args:
            repository_type: Type of repository to create ('memory', 'csv', 'sqlite')
            **kwargs: Additional arguments to pass to repository constructor

        Returns:
            Repository instance implementing BaseRepository interface

        Raises:
            ValueError: If repository type is not supported
        """
        if repository_type not in cls._repositories:
            available_types = list(cls._repositories.keys())
            raise ValueError(
                f"Unsupported repository type: {repository_type}. "
                f"Available types: {available_types}"
            )

        repository_class = cls._repositories[repository_type]

        # Filter kwargs based on repository type to avoid unsupported parameters
        accepted = cls._accepted_kwargs.get(repository_type)
        clean_kwargs = {k: v for k, v in kwargs.items() if k != 'type'}
        if accepted is not None:
            clean_kwargs = {k: v for k, v in clean_kwargs.items() if k in accepted}

        try:
            logger.info(f"Creating {repository_type} repository with args: {clean_kwargs}")
            return repository_class(**clean_kwargs)
        except Exception as e:
            logger.error(f"Failed to create {repository_type} repository: {e}")
            raise

    @classmethod
    def create_from_config(cls, repo_config: Dict[str, Any]) -> BaseRepository:
        """Create a repository from a settings-style dict ({'type': ..., **kwargs})."""
        repository_type = repo_config.get('type', 'sqlite')
        kwargs = {k: v for k, v in repo_config.items() if k != 'type'}
        return cls.create_repository(repository_type, **kwargs)

    @classmethod
    def register_repository(cls, name: str, repository_class: type) -> None:
        """Register a new repository type.

        Args:
            name: Name for the repository type
            repository_class: Repository class implementing BaseRepository
        """
        if not issubclass(repository_class, BaseRepository):
            raise ValueError(
                f"Repository class must implement BaseRepository interface: {repository_class}"
            )

        cls._repositories[name] = repository_class
        logger.info(f"Registered repository type: {name}")

    @classmethod
    def get_available_types(cls) -> list[str]:
        """Get list of available repository types."""
        return list(cls._repositories.keys())
