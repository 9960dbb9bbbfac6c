"""Holding data models."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Any

from financial.calculations import normalize_stored_decimal


@dataclass
class Holding:
    """A user's share balance for one symbol.

    At most one holding exists per (user_id, symbol). Rows are kept when the
    quantity drops to zero.
    """
    holding_id: int
    user_id: int
    symbol: str
    quantity: Decimal
    display_name: Optional[str] = None

    def __post_init__(self):
        """Normalize id and quantity types; default the display name to the symbol."""
        self.holding_id = int(self.holding_id)
        self.user_id = int(self.user_id)
        if not isinstance(self.quantity, Decimal):
            self.quantity = Decimal(str(self.quantity))
        if not self.display_name:
            self.display_name = self.symbol

    @property
    def key(self) -> tuple[int, str]:
        return self.user_id, self.symbol

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for CSV serialization."""
        return {
            'id': self.holding_id,
            'symbol': self.symbol,
            'display_name': self.display_name,
            'quantity': normalize_stored_decimal(self.quantity),
            'user_id': self.user_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Holding:
        """Create Holding from dictionary (CSV row or database record)."""
        return cls(
            holding_id=int(data['id']),
            user_id=int(data['user_id']),
            symbol=str(data['symbol']),
            quantity=Decimal(str(data.get('quantity', '0'))),
            display_name=data.get('display_name') or None
        )
