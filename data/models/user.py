"""User data models."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Any

from financial.calculations import normalize_stored_decimal


@dataclass
class User:
    """Represents a ledger account holder and their cash balance.

    This model is designed to work with the memory, CSV and SQLite backends,
    supporting serialization to/from dictionaries for CSV rows.
    """
    user_id: int
    user_name: str
    cash_balance: Decimal
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        """Normalize id and balance types."""
        self.user_id = int(self.user_id)
        if not isinstance(self.cash_balance, Decimal):
            self.cash_balance = Decimal(str(self.cash_balance))

    @property
    def display_name(self) -> str:
        """First and last name joined by a space (either may be empty)."""
        return f"{self.first_name or ''} {self.last_name or ''}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for CSV serialization.

        The balance is written as text so no precision is lost.
        """
        return {
            'id': self.user_id,
            'first_name': self.first_name or '',
            'last_name': self.last_name or '',
            'user_name': self.user_name,
            'password': self.password or '',
            'cash_balance': normalize_stored_decimal(self.cash_balance)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> User:
        """Create User from dictionary (CSV row or database record).

        Args:
            data: Dictionary containing user data

        Returns:
            User instance
        """
        def optional_text(value):
            if value is None:
                return None
            text = str(value)
            if text == '' or text.lower() == 'nan':
                return None
            return text

        return cls(
            user_id=int(data['id']),
            user_name=str(data.get('user_name', '')),
            cash_balance=Decimal(str(data.get('cash_balance', '0'))),
            first_name=optional_text(data.get('first_name')),
            last_name=optional_text(data.get('last_name')),
            password=optional_text(data.get('password'))
        )
