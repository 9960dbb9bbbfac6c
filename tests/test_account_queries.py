"""Tests for the LIST and BALANCE queries."""

from decimal import Decimal

import pytest

from portfolio.trade_processor import UserNotFoundError


def test_balance_of_seeded_user(account_queries):
    view = account_queries.get_balance(1)
    assert view.display_name == "Robby Bobby"
    assert view.cash_balance == Decimal("100.00")


def test_balance_reflects_trades(account_queries, trade_processor):
    trade_processor.execute_buy_trade("MSFT", Decimal("3.4"), Decimal("1.35"), 1)
    assert account_queries.get_balance(1).cash_balance == Decimal("95.410")


def test_balance_unknown_user(account_queries):
    with pytest.raises(UserNotFoundError, match="User 999 doesn't exist"):
        account_queries.get_balance(999)


def test_list_empty(account_queries):
    assert account_queries.list_holdings(1) == []


def test_list_unknown_user_is_empty(account_queries):
    assert account_queries.list_holdings(999) == []


def test_list_in_insertion_order_with_zero_rows(account_queries, trade_processor):
    trade_processor.execute_buy_trade("MSFT", Decimal("3.4"), Decimal("1.35"), 1)
    trade_processor.execute_buy_trade("AAPL", Decimal("2"), Decimal("1.45"), 1)
    trade_processor.execute_sell_trade("MSFT", Decimal("3.4"), Decimal("1"), 1)

    holdings = account_queries.list_holdings(1)
    assert [h.symbol for h in holdings] == ["MSFT", "AAPL"]
    assert holdings[0].quantity == Decimal("0")
    assert holdings[1].quantity == Decimal("2")


def test_queries_refused_while_shutting_down(account_queries, coordinator):
    from data.write_coordinator import LedgerShuttingDownError

    coordinator.drain()
    with pytest.raises(LedgerShuttingDownError):
        account_queries.list_holdings(1)
