"""SQLite repository implementation built on SQLAlchemy."""

from __future__ import annotations

import shutil
from decimal import Decimal
from pathlib import Path
from typing import List, Optional
import logging

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from financial.calculations import apply_delta, normalize_stored_decimal
from .base_repository import BaseRepository, RepositoryError, DataValidationError, DataNotFoundError
from ..models.user import User
from ..models.holding import Holding

logger = logging.getLogger(__name__)

Base = declarative_base()

# SQLite INTEGER is a signed 64-bit value; larger ids cannot be bound
SQLITE_MAX_INTEGER = 2 ** 63 - 1
SQLITE_MIN_INTEGER = -(2 ** 63)


def _storable_id(value: int) -> bool:
    return SQLITE_MIN_INTEGER <= value <= SQLITE_MAX_INTEGER


class DecimalText(TypeDecorator):
    """Decimal stored as TEXT, since SQLite's NUMERIC affinity would go through float."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return normalize_stored_decimal(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UserRow(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String)
    last_name = Column(String)
    user_name = Column(String, nullable=False)
    password = Column(String)
    cash_balance = Column(DecimalText, nullable=False)


class HoldingRow(Base):
    __tablename__ = "holdings"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="uq_holdings_user_symbol"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(10), nullable=False, index=True)
    display_name = Column(String(20), nullable=False)
    quantity = Column(DecimalText, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)


def _to_user(row: UserRow) -> User:
    return User(
        user_id=row.id,
        user_name=row.user_name,
        cash_balance=row.cash_balance,
        first_name=row.first_name,
        last_name=row.last_name,
        password=row.password
    )


def _to_holding(row: HoldingRow) -> Holding:
    return Holding(
        holding_id=row.id,
        user_id=row.user_id,
        symbol=row.symbol,
        quantity=row.quantity,
        display_name=row.display_name
    )


class SQLiteRepository(BaseRepository):
    """SQLite-backed ledger store.

    Tables are created on first open. Each public method runs in its own
    session and commits before returning.
    """

    def __init__(self, database_path: str):
        """Open (or create) the SQLite database.

        Args:
            database_path: Path of the database file, or ":memory:"

        Raises:
            RepositoryError: If the database cannot be opened or initialized
        """
        super().__init__()
        if not database_path:
            raise ValueError("database_path is required for SQLiteRepository")

        self.database_path = database_path
        if database_path != ":memory:":
            Path(database_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # One connection shared by all worker threads; self._lock serializes access
            self.engine = create_engine(
                f"sqlite:///{database_path}",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Cannot open database {database_path}: {e}")
            raise RepositoryError(f"Cannot open database {database_path}: {e}") from e

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine)
        logger.info(f"SQLite ledger opened at {database_path}")

    def get_user(self, user_id: int) -> User:
        with self._lock:
            self._ensure_open()
            if not _storable_id(user_id):
                raise DataNotFoundError(f"User {user_id} doesn't exist")
            try:
                with self.SessionLocal() as db:
                    row = db.get(UserRow, user_id)
                    if row is None:
                        raise DataNotFoundError(f"User {user_id} doesn't exist")
                    return _to_user(row)
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to load user {user_id}: {e}") from e

    def adjust_cash(self, user_id: int, delta: Decimal) -> User:
        with self._lock:
            self._ensure_open()
            if not _storable_id(user_id):
                raise DataNotFoundError(f"User {user_id} doesn't exist")
            try:
                with self.SessionLocal() as db:
                    row = db.get(UserRow, user_id)
                    if row is None:
                        raise DataNotFoundError(f"User {user_id} doesn't exist")
                    row.cash_balance = apply_delta(row.cash_balance, delta)
                    db.commit()
                    return _to_user(row)
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to update cash for user {user_id}: {e}") from e

    def get_holding(self, user_id: int, symbol: str) -> Optional[Holding]:
        with self._lock:
            self._ensure_open()
            if not _storable_id(user_id):
                return None
            try:
                with self.SessionLocal() as db:
                    row = db.execute(
                        select(HoldingRow).where(HoldingRow.user_id == user_id, HoldingRow.symbol == symbol)
                    ).scalar_one_or_none()
                    return _to_holding(row) if row is not None else None
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to load {symbol} holding for user {user_id}: {e}") from e

    def upsert_holding_delta(self, user_id: int, symbol: str, delta: Decimal) -> Holding:
        with self._lock:
            self._ensure_open()
            if not _storable_id(user_id):
                raise DataValidationError(f"User id {user_id} is out of range")
            try:
                with self.SessionLocal() as db:
                    row = db.execute(
                        select(HoldingRow).where(HoldingRow.user_id == user_id, HoldingRow.symbol == symbol)
                    ).scalar_one_or_none()
                    if row is None:
                        row = HoldingRow(symbol=symbol, display_name=symbol, quantity=delta, user_id=user_id)
                        db.add(row)
                    else:
                        row.quantity = apply_delta(row.quantity, delta)
                    db.commit()
                    return _to_holding(row)
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to update {symbol} holding for user {user_id}: {e}") from e

    def list_holdings(self, user_id: int) -> List[Holding]:
        with self._lock:
            self._ensure_open()
            if not _storable_id(user_id):
                return []
            try:
                with self.SessionLocal() as db:
                    rows = db.execute(
                        select(HoldingRow).where(HoldingRow.user_id == user_id).order_by(HoldingRow.id)
                    ).scalars().all()
                    return [_to_holding(row) for row in rows]
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to list holdings for user {user_id}: {e}") from e

    def create_user(self, user_name: str, cash_balance: Decimal,
                    first_name: Optional[str] = None,
                    last_name: Optional[str] = None,
                    password: Optional[str] = None) -> User:
        if cash_balance < 0:
            raise DataValidationError(f"Starting cash balance must not be negative: {cash_balance}")
        with self._lock:
            self._ensure_open()
            try:
                with self.SessionLocal() as db:
                    row = UserRow(
                        first_name=first_name,
                        last_name=last_name,
                        user_name=user_name,
                        password=password,
                        cash_balance=cash_balance
                    )
                    db.add(row)
                    db.commit()
                    return _to_user(row)
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to create user {user_name}: {e}") from e

    def count_users(self) -> int:
        with self._lock:
            self._ensure_open()
            try:
                with self.SessionLocal() as db:
                    return db.execute(select(func.count()).select_from(UserRow)).scalar_one()
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to count users: {e}") from e

    def all_users(self) -> List[User]:
        with self._lock:
            self._ensure_open()
            with self.SessionLocal() as db:
                rows = db.execute(select(UserRow).order_by(UserRow.id)).scalars().all()
                return [_to_user(row) for row in rows]

    def all_holdings(self) -> List[Holding]:
        with self._lock:
            self._ensure_open()
            with self.SessionLocal() as db:
                rows = db.execute(select(HoldingRow).order_by(HoldingRow.id)).scalars().all()
                return [_to_holding(row) for row in rows]

    def backup_data(self, backup_path: str) -> None:
        """Copy the database file into ``backup_path``.

        Args:
            backup_path: Directory where the backup should be created
        """
        if self.database_path == ":memory:":
            raise RepositoryError("In-memory SQLite databases cannot be backed up")
        try:
            backup_dir = Path(backup_path)
            backup_dir.mkdir(parents=True, exist_ok=True)
            with self._lock:
                source = Path(self.database_path)
                shutil.copy2(source, backup_dir / source.name)
            logger.info(f"Backup completed to {backup_path}")
        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            raise RepositoryError(f"Failed to create backup: {e}") from e

    def _close_backend(self) -> None:
        self.engine.dispose()
