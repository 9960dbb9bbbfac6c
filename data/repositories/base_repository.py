"""Abstract base repository interface."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter
from decimal import Decimal
from typing import List, Optional
import logging

from ..models.user import User
from ..models.holding import Holding

logger = logging.getLogger(__name__)


class BaseRepository(ABC):
    """Abstract base class for ledger data access.

    This interface defines the contract for all ledger store implementations,
    allowing the system to work with different backends (memory, CSV,
    SQLite) without changing business logic.

    Every public method is atomic on its own: implementations hold
    ``self._lock`` for the whole read-modify-write. Sequences spanning
    several calls are serialized one level up by the WriteCoordinator.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._closed = False

    @abstractmethod
    def get_user(self, user_id: int) -> User:
        """Get a user by id.

        Raises:
            DataNotFoundError: If no user has this id
            RepositoryError: If data access fails
        """
        pass

    @abstractmethod
    def adjust_cash(self, user_id: int, delta: Decimal) -> User:
        """Add ``delta`` (possibly negative) to a user's cash balance.

        The caller is responsible for checking that the result stays
        non-negative.

        Returns:
            The updated User

        Raises:
            DataNotFoundError: If no user has this id
            RepositoryError: If the update fails
        """
        pass

    @abstractmethod
    def get_holding(self, user_id: int, symbol: str) -> Optional[Holding]:
        """Get the holding for (user_id, symbol).

        Returns:
            The Holding, or None if the user never held the symbol
        """
        pass

    @abstractmethod
    def upsert_holding_delta(self, user_id: int, symbol: str, delta: Decimal) -> Holding:
        """Create the holding with ``quantity = delta`` or add ``delta`` to it.

        The caller guarantees the resulting quantity is non-negative.

        Returns:
            The created or updated Holding
        """
        pass

    @abstractmethod
    def list_holdings(self, user_id: int) -> List[Holding]:
        """List a user's holdings ordered by holding id (insertion order).

        An unknown user simply has no holdings.
        """
        pass

    @abstractmethod
    def create_user(self, user_name: str, cash_balance: Decimal,
                    first_name: Optional[str] = None,
                    last_name: Optional[str] = None,
                    password: Optional[str] = None) -> User:
        """Insert a new user and assign its id.

        Raises:
            DataValidationError: If the starting balance is negative
        """
        pass

    @abstractmethod
    def count_users(self) -> int:
        pass

    @abstractmethod
    def all_users(self) -> List[User]:
        pass

    @abstractmethod
    def all_holdings(self) -> List[Holding]:
        pass

    @abstractmethod
    def backup_data(self, backup_path: str) -> None:
        """Create a backup of all data.

        Args:
            backup_path: Directory where the backup should be created

        Raises:
            RepositoryError: If backup operation fails
        """
        pass

    def seed_default_user(self, user_name: str, cash_balance: Decimal,
                          first_name: Optional[str] = None,
                          last_name: Optional[str] = None,
                          password: Optional[str] = None) -> Optional[User]:
        """Create the default user if the store has no users yet.

        Returns:
            The seeded User, or None if users already existed
        """
        with self._lock:
            if self.count_users() > 0:
                return None
            user = self.create_user(
                user_name=user_name,
                cash_balance=cash_balance,
                first_name=first_name,
                last_name=last_name,
                password=password
            )
        logger.info(f"Created default user: {user.display_name} with ${cash_balance} balance")
        return user

    def validate_data_integrity(self) -> List[str]:
        """Validate ledger invariants and return list of issues found.

        Checks for negative balances and quantities, duplicate
        (user, symbol) rows and holdings that reference unknown users.

        Returns:
            List of validation error messages (empty if no issues)
        """
        issues: List[str] = []
        with self._lock:
            users = self.all_users()
            holdings = self.all_holdings()

        user_ids = {user.user_id for user in users}
        for user in users:
            if user.cash_balance < 0:
                issues.append(f"User {user.user_id} has negative cash balance {user.cash_balance}")

        for holding in holdings:
            if holding.quantity < 0:
                issues.append(
                    f"Holding {holding.holding_id} ({holding.symbol}) has negative quantity {holding.quantity}"
                )
            if holding.user_id not in user_ids:
                issues.append(f"Holding {holding.holding_id} references unknown user {holding.user_id}")

        duplicates = Counter(holding.key for holding in holdings)
        for (user_id, symbol), count in duplicates.items():
            if count > 1:
                issues.append(f"User {user_id} has {count} rows for symbol {symbol}")

        if issues:
            logger.warning(f"Data integrity check found {len(issues)} issue(s)")
        return issues

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_backend()
        logger.info(f"{type(self).__name__} closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def _close_backend(self) -> None:
        """Hook for subclasses that hold open resources."""
        pass

    def _ensure_open(self) -> None:
        if self._closed:
            raise RepositoryError(f"{type(self).__name__} is closed")


class RepositoryError(Exception):
    """Base exception for repository operations."""
    pass


class DataValidationError(RepositoryError):
    """Exception raised when data validation fails."""
    pass


class DataNotFoundError(RepositoryError):
    """Exception raised when requested data is not found."""
    pass
