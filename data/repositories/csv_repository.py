"""CSV-based repository implementation."""

from __future__ import annotations

import os
import shutil
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Dict, Any
import pandas as pd
import logging

from config.constants import USERS_CSV_NAME, HOLDINGS_CSV_NAME
from financial.calculations import apply_delta
from .base_repository import BaseRepository, RepositoryError, DataValidationError, DataNotFoundError
from ..models.user import User
from ..models.holding import Holding

logger = logging.getLogger(__name__)

USER_COLUMNS = ['id', 'first_name', 'last_name', 'user_name', 'password', 'cash_balance']
HOLDING_COLUMNS = ['id', 'symbol', 'display_name', 'quantity', 'user_id']

_CSV_ERRORS = (OSError, ValueError, KeyError, pd.errors.ParserError, pd.errors.EmptyDataError)


class CSVRepository(BaseRepository):
    """CSV-based implementation of the ledger store.

    Users and holdings live in two CSV files inside ``data_directory``.
    Every column is read as text so balances and quantities round-trip
    through Decimal without float conversion. Each write rewrites the file
    through a temporary file and ``os.replace``.
    """

    def __init__(self, data_directory: str):
        """Initialize CSV repository.

        Args:
            data_directory: Directory holding users.csv and holdings.csv
        """
        super().__init__()
        if not data_directory:
            raise ValueError("data_directory is required for CSVRepository")

        self.data_dir = Path(data_directory)
        self.users_file = self.data_dir / USERS_CSV_NAME
        self.holdings_file = self.data_dir / HOLDINGS_CSV_NAME

        # Ensure data directory exists
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"CSV ledger using {self.data_dir}")

    def get_user(self, user_id: int) -> User:
        with self._lock:
            self._ensure_open()
            for row in self._read_rows(self.users_file, USER_COLUMNS):
                if int(row['id']) == user_id:
                    return User.from_dict(row)
        raise DataNotFoundError(f"User {user_id} doesn't exist")

    def adjust_cash(self, user_id: int, delta: Decimal) -> User:
        with self._lock:
            self._ensure_open()
            rows = self._read_rows(self.users_file, USER_COLUMNS)
            for index, row in enumerate(rows):
                if int(row['id']) == user_id:
                    user = User.from_dict(row)
                    user.cash_balance = apply_delta(user.cash_balance, delta)
                    rows[index] = user.to_dict()
                    self._write_rows(self.users_file, USER_COLUMNS, rows)
                    return user
        raise DataNotFoundError(f"User {user_id} doesn't exist")

    def get_holding(self, user_id: int, symbol: str) -> Optional[Holding]:
        with self._lock:
            self._ensure_open()
            for row in self._read_rows(self.holdings_file, HOLDING_COLUMNS):
                if int(row['user_id']) == user_id and row['symbol'] == symbol:
                    return Holding.from_dict(row)
        return None

    def upsert_holding_delta(self, user_id: int, symbol: str, delta: Decimal) -> Holding:
        with self._lock:
            self._ensure_open()
            rows = self._read_rows(self.holdings_file, HOLDING_COLUMNS)
            for index, row in enumerate(rows):
                if int(row['user_id']) == user_id and row['symbol'] == symbol:
                    holding = Holding.from_dict(row)
                    holding.quantity = apply_delta(holding.quantity, delta)
                    rows[index] = holding.to_dict()
                    break
            else:
                holding = Holding(
                    holding_id=self._next_id(rows),
                    user_id=user_id,
                    symbol=symbol,
                    quantity=delta
                )
                rows.append(holding.to_dict())
            self._write_rows(self.holdings_file, HOLDING_COLUMNS, rows)
            return holding

    def list_holdings(self, user_id: int) -> List[Holding]:
        with self._lock:
            self._ensure_open()
            rows = self._read_rows(self.holdings_file, HOLDING_COLUMNS)
        holdings = [Holding.from_dict(row) for row in rows if int(row['user_id']) == user_id]
        return sorted(holdings, key=lambda h: h.holding_id)

    def create_user(self, user_name: str, cash_balance: Decimal,
                    first_name: Optional[str] = None,
                    last_name: Optional[str] = None,
                    password: Optional[str] = None) -> User:
        if cash_balance < 0:
            raise DataValidationError(f"Starting cash balance must not be negative: {cash_balance}")
        with self._lock:
            self._ensure_open()
            rows = self._read_rows(self.users_file, USER_COLUMNS)
            user = User(
                user_id=self._next_id(rows),
                user_name=user_name,
                cash_balance=cash_balance,
                first_name=first_name,
                last_name=last_name,
                password=password
            )
            rows.append(user.to_dict())
            self._write_rows(self.users_file, USER_COLUMNS, rows)
            return user

    def count_users(self) -> int:
        with self._lock:
            return len(self._read_rows(self.users_file, USER_COLUMNS))

    def all_users(self) -> List[User]:
        with self._lock:
            rows = self._read_rows(self.users_file, USER_COLUMNS)
        return sorted((User.from_dict(row) for row in rows), key=lambda u: u.user_id)

    def all_holdings(self) -> List[Holding]:
        with self._lock:
            rows = self._read_rows(self.holdings_file, HOLDING_COLUMNS)
        return sorted((Holding.from_dict(row) for row in rows), key=lambda h: h.holding_id)

    def backup_data(self, backup_path: str) -> None:
        """Create a backup of both CSV files.

        Args:
            backup_path: Path where backup should be created
        """
        try:
            backup_dir = Path(backup_path)
            backup_dir.mkdir(parents=True, exist_ok=True)

            with self._lock:
                for file_path in (self.users_file, self.holdings_file):
                    if file_path.exists():
                        shutil.copy2(file_path, backup_dir / file_path.name)
                        logger.info(f"Backed up {file_path.name}")

            logger.info(f"Backup completed to {backup_path}")

        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            raise RepositoryError(f"Failed to create backup: {e}") from e

    def _read_rows(self, file_path: Path, columns: List[str]) -> List[Dict[str, Any]]:
        """Read a CSV file into a list of text-valued row dicts."""
        if not file_path.exists():
            return []
        try:
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            return []
        except _CSV_ERRORS as e:
            logger.error(f"Failed to read {file_path.name}: {e}")
            raise RepositoryError(f"Failed to read {file_path.name}: {e}") from e

        missing_columns = [col for col in columns if col not in df.columns]
        if missing_columns:
            raise RepositoryError(f"{file_path.name} missing columns: {missing_columns}")
        return df[columns].to_dict('records')

    def _write_rows(self, file_path: Path, columns: List[str], rows: List[Dict[str, Any]]) -> None:
        """Rewrite a CSV file from row dicts via a temporary file."""
        tmp_path = file_path.with_suffix(file_path.suffix + '.tmp')
        try:
            df = pd.DataFrame(rows, columns=columns)
            df.to_csv(tmp_path, index=False, lineterminator='\n')
            os.replace(tmp_path, file_path)
        except _CSV_ERRORS as e:
            logger.error(f"Failed to write {file_path.name}: {e}")
            raise RepositoryError(f"Failed to write {file_path.name}: {e}") from e

    @staticmethod
    def _next_id(rows: List[Dict[str, Any]]) -> int:
        return max((int(row['id']) for row in rows), default=0) + 1
