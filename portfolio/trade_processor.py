"""Trade processing module.

This module provides the TradeProcessor class for executing BUY and SELL
commands against the ledger store. It owns the affordability and
sufficiency checks and keeps each trade atomic with respect to any other
operation on the same user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from data.repositories.base_repository import BaseRepository, RepositoryError, DataNotFoundError
from data.write_coordinator import WriteCoordinator
from financial.calculations import calculate_trade_total, format_amount

logger = logging.getLogger(__name__)


class TradeProcessorError(Exception):
    """Base exception for trade processor operations."""
    pass


class InvalidArgumentError(TradeProcessorError):
    """Exception raised when amount or price is not positive."""

    def __init__(self, amount: Decimal, price: Decimal):
        self.amount = amount
        self.price = price
        super().__init__(f"Amount and price must be positive (amount: {amount}, price: {price})")


class UserNotFoundError(TradeProcessorError):
    """Exception raised when the referenced user does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} doesn't exist")


class InsufficientFundsError(TradeProcessorError):
    """Exception raised when insufficient funds for trade."""

    def __init__(self, user_id: int, current_balance: Decimal, required: Decimal):
        self.user_id = user_id
        self.current_balance = current_balance
        self.required = required
        super().__init__(
            f"Not enough USD balance. Current balance: ${format_amount(current_balance)}, "
            f"Required: ${format_amount(required)}"
        )


class InsufficientHoldingsError(TradeProcessorError):
    """Exception raised when insufficient shares for sell trade.

    ``current_quantity`` is None when the user never held the symbol.
    """

    def __init__(self, user_id: int, symbol: str, current_quantity: Optional[Decimal], requested: Decimal):
        self.user_id = user_id
        self.symbol = symbol
        self.current_quantity = current_quantity
        self.requested = requested
        if current_quantity is None:
            message = f"No {symbol} stock found for user {user_id}"
        else:
            message = (
                f"Not enough {symbol} stock balance. Current: {format_amount(current_quantity)}, "
                f"Requested: {format_amount(requested)}"
            )
        super().__init__(message)


@dataclass(frozen=True)
class TradeResult:
    """Outcome of an executed trade: the new holding quantity and cash balance."""
    action: str
    user_id: int
    symbol: str
    amount: Decimal
    price: Decimal
    total: Decimal
    quantity: Decimal
    cash_balance: Decimal


class TradeProcessor:
    """Processes BUY/SELL trades using the repository pattern.

    The processor never looks up market prices: the price per unit is
    supplied by the caller.
    """

    def __init__(self, repository: BaseRepository, coordinator: WriteCoordinator):
        """Initialize trade processor.

        Args:
            repository: Repository implementation for data access
            coordinator: Coordinator serializing operations per user
        """
        self.repository = repository
        self.coordinator = coordinator
        logger.info(f"Trade processor initialized with {type(repository).__name__}")

    def execute_buy_trade(self, symbol: str, amount: Decimal, price: Decimal, user_id: int) -> TradeResult:
        """Buy ``amount`` units of ``symbol`` at ``price`` for ``user_id``.

        Args:
            symbol: Trading symbol
            amount: Number of units to buy (fractional allowed)
            price: Price per unit
            user_id: Buying user

        Returns:
            TradeResult with the new holding quantity and cash balance

        Raises:
            InvalidArgumentError: If amount or price is not positive
            UserNotFoundError: If the user does not exist
            InsufficientFundsError: If cash does not cover amount * price
            RepositoryError: If the store fails
        """
        self._validate_trade_arguments(amount, price)
        logger.info(f"Executing buy trade: user {user_id} {symbol} {amount} @ {price}")

        try:
            with self.coordinator.user_lock(user_id):
                try:
                    user = self.repository.get_user(user_id)
                except DataNotFoundError as e:
                    raise UserNotFoundError(user_id) from e

                total_cost = calculate_trade_total(amount, price)
                if user.cash_balance < total_cost:
                    raise InsufficientFundsError(user_id, user.cash_balance, total_cost)

                updated_user = self.repository.adjust_cash(user_id, total_cost.copy_negate())
                try:
                    holding = self.repository.upsert_holding_delta(user_id, symbol, amount)
                except RepositoryError:
                    logger.error(f"Holding update failed for user {user_id} {symbol}, refunding ${total_cost}")
                    self.repository.adjust_cash(user_id, total_cost)
                    raise

        except (RepositoryError, TradeProcessorError) as e:
            logger.warning(f"Buy trade rejected for user {user_id} {symbol}: {e}")
            raise

        logger.info(f"Buy trade executed successfully: user {user_id} {symbol} {amount} @ {price}")
        return TradeResult(
            action='BUY',
            user_id=user_id,
            symbol=symbol,
            amount=amount,
            price=price,
            total=total_cost,
            quantity=holding.quantity,
            cash_balance=updated_user.cash_balance
        )

    def execute_sell_trade(self, symbol: str, amount: Decimal, price: Decimal, user_id: int) -> TradeResult:
        """Sell ``amount`` units of ``symbol`` at ``price`` for ``user_id``.

        A user who never held the symbol gets the same error type as one
        holding too little.

        Returns:
            TradeResult with the new holding quantity and cash balance

        Raises:
            InvalidArgumentError: If amount or price is not positive
            InsufficientHoldingsError: If the holding is absent or too small
            RepositoryError: If the store fails
        """
        self._validate_trade_arguments(amount, price)
        logger.info(f"Executing sell trade: user {user_id} {symbol} {amount} @ {price}")

        try:
            with self.coordinator.user_lock(user_id):
                holding = self.repository.get_holding(user_id, symbol)
                if holding is None:
                    raise InsufficientHoldingsError(user_id, symbol, None, amount)
                if holding.quantity < amount:
                    raise InsufficientHoldingsError(user_id, symbol, holding.quantity, amount)

                total_revenue = calculate_trade_total(amount, price)
                updated_holding = self.repository.upsert_holding_delta(user_id, symbol, amount.copy_negate())
                try:
                    updated_user = self.repository.adjust_cash(user_id, total_revenue)
                except RepositoryError:
                    logger.error(f"Cash credit failed for user {user_id}, restoring {amount} {symbol}")
                    self.repository.upsert_holding_delta(user_id, symbol, amount)
                    raise

        except (RepositoryError, TradeProcessorError) as e:
            logger.warning(f"Sell trade rejected for user {user_id} {symbol}: {e}")
            raise

        logger.info(f"Sell trade executed successfully: user {user_id} {symbol} {amount} @ {price}")
        return TradeResult(
            action='SELL',
            user_id=user_id,
            symbol=symbol,
            amount=amount,
            price=price,
            total=total_revenue,
            quantity=updated_holding.quantity,
            cash_balance=updated_user.cash_balance
        )

    @staticmethod
    def _validate_trade_arguments(amount: Decimal, price: Decimal) -> None:
        if amount <= 0 or price <= 0:
            raise InvalidArgumentError(amount, price)
