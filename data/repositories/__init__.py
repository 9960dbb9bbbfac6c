"""Repository pattern implementation for ledger data access."""

from .base_repository import (
    BaseRepository,
    RepositoryError,
    DataValidationError,
    DataNotFoundError
)
from .memory_repository import InMemoryRepository
from .csv_repository import CSVRepository
from .sqlite_repository import SQLiteRepository
from .repository_factory import RepositoryFactory

__all__ = [
    # Base repository interface
    'BaseRepository',
    'RepositoryError',
    'DataValidationError',
    'DataNotFoundError',

    # Concrete implementations
    'InMemoryRepository',
    'CSVRepository',
    'SQLiteRepository',

    # Factory
    'RepositoryFactory',
]
