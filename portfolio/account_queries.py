"""Read-only LIST and BALANCE projections of the ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from data.models.holding import Holding
from data.repositories.base_repository import BaseRepository, DataNotFoundError
from data.write_coordinator import WriteCoordinator
from portfolio.trade_processor import UserNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceView:
    """Display name and cash balance of one user."""
    user_id: int
    first_name: Optional[str]
    last_name: Optional[str]
    cash_balance: Decimal

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}"


class AccountQueries:
    """Serves LIST and BALANCE.

    Reads take the same per-user lock as trades, so a reader never sees a
    trade half applied.
    """

    def __init__(self, repository: BaseRepository, coordinator: WriteCoordinator):
        self.repository = repository
        self.coordinator = coordinator

    def list_holdings(self, user_id: int) -> List[Holding]:
        """Return every holding of ``user_id``, zero-quantity rows included.

        No existence check is made: an unknown user has an empty list.
        """
        with self.coordinator.user_lock(user_id):
            holdings = self.repository.list_holdings(user_id)
        logger.debug(f"Listed {len(holdings)} holding(s) for user {user_id}")
        return holdings

    def get_balance(self, user_id: int) -> BalanceView:
        """Return the user's name and cash balance.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        with self.coordinator.user_lock(user_id):
            try:
                user = self.repository.get_user(user_id)
            except DataNotFoundError as e:
                raise UserNotFoundError(user_id) from e
        return BalanceView(
            user_id=user.user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            cash_balance=user.cash_balance
        )
