"""In-memory repository implementation."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

from financial.calculations import apply_delta
from .base_repository import BaseRepository, RepositoryError, DataValidationError, DataNotFoundError
from ..models.user import User
from ..models.holding import Holding

logger = logging.getLogger(__name__)


class InMemoryRepository(BaseRepository):
    """Dict-backed ledger store.

    Nothing survives the process. Used by the test suite and for throwaway
    servers (``--repository memory``).
    """

    def __init__(self):
        super().__init__()
        self._users: Dict[int, User] = {}
        self._holdings: Dict[Tuple[int, str], Holding] = {}
        self._next_user_id = 1
        self._next_holding_id = 1

    def get_user(self, user_id: int) -> User:
        with self._lock:
            self._ensure_open()
            user = self._users.get(user_id)
            if user is None:
                raise DataNotFoundError(f"User {user_id} doesn't exist")
            return self._copy_user(user)

    def adjust_cash(self, user_id: int, delta: Decimal) -> User:
        with self._lock:
            self._ensure_open()
            user = self._users.get(user_id)
            if user is None:
                raise DataNotFoundError(f"User {user_id} doesn't exist")
            user.cash_balance = apply_delta(user.cash_balance, delta)
            return self._copy_user(user)

    def get_holding(self, user_id: int, symbol: str) -> Optional[Holding]:
        with self._lock:
            self._ensure_open()
            holding = self._holdings.get((user_id, symbol))
            return self._copy_holding(holding) if holding else None

    def upsert_holding_delta(self, user_id: int, symbol: str, delta: Decimal) -> Holding:
        with self._lock:
            self._ensure_open()
            holding = self._holdings.get((user_id, symbol))
            if holding is None:
                holding = Holding(
                    holding_id=self._next_holding_id,
                    user_id=user_id,
                    symbol=symbol,
                    quantity=delta
                )
                self._next_holding_id += 1
                self._holdings[holding.key] = holding
            else:
                holding.quantity = apply_delta(holding.quantity, delta)
            return self._copy_holding(holding)

    def list_holdings(self, user_id: int) -> List[Holding]:
        with self._lock:
            self._ensure_open()
            rows = [h for h in self._holdings.values() if h.user_id == user_id]
            return [self._copy_holding(h) for h in sorted(rows, key=lambda h: h.holding_id)]

    def create_user(self, user_name: str, cash_balance: Decimal,
                    first_name: Optional[str] = None,
                    last_name: Optional[str] = None,
                    password: Optional[str] = None) -> User:
        if cash_balance < 0:
            raise DataValidationError(f"Starting cash balance must not be negative: {cash_balance}")
        with self._lock:
            self._ensure_open()
            user = User(
                user_id=self._next_user_id,
                user_name=user_name,
                cash_balance=cash_balance,
                first_name=first_name,
                last_name=last_name,
                password=password
            )
            self._next_user_id += 1
            self._users[user.user_id] = user
            return self._copy_user(user)

    def count_users(self) -> int:
        with self._lock:
            return len(self._users)

    def all_users(self) -> List[User]:
        with self._lock:
            return [self._copy_user(u) for u in sorted(self._users.values(), key=lambda u: u.user_id)]

    def all_holdings(self) -> List[Holding]:
        with self._lock:
            return [self._copy_holding(h) for h in sorted(self._holdings.values(), key=lambda h: h.holding_id)]

    def backup_data(self, backup_path: str) -> None:
        """Write a JSON snapshot of users and holdings into ``backup_path``."""
        try:
            backup_dir = Path(backup_path)
            backup_dir.mkdir(parents=True, exist_ok=True)
            with self._lock:
                snapshot = {
                    'users': [u.to_dict() for u in self.all_users()],
                    'holdings': [h.to_dict() for h in self.all_holdings()]
                }
            target = backup_dir / "ledger_snapshot.json"
            with open(target, 'w') as f:
                json.dump(snapshot, f, indent=2)
            logger.info(f"Memory ledger snapshot written to {target}")
        except OSError as e:
            logger.error(f"Failed to back up memory ledger: {e}")
            raise RepositoryError(f"Failed to back up memory ledger: {e}") from e

    @staticmethod
    def _copy_user(user: User) -> User:
        return User(**vars(user))

    @staticmethod
    def _copy_holding(holding: Holding) -> Holding:
        return Holding(**vars(holding))
