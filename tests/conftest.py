import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from data.repositories.memory_repository import InMemoryRepository
from data.write_coordinator import WriteCoordinator
from portfolio.account_queries import AccountQueries
from portfolio.trade_processor import TradeProcessor
from protocol.commands import CommandParser
from protocol.interpreter import CommandInterpreter


def seed_robby(repository):
    """Create the default user (id 1, $100.00)."""
    return repository.seed_default_user(
        user_name="Rob_bob",
        cash_balance=Decimal("100.00"),
        first_name="Robby",
        last_name="Bobby",
        password="password123"
    )


@pytest.fixture
def repository():
    repo = InMemoryRepository()
    seed_robby(repo)
    yield repo
    repo.close()


@pytest.fixture
def coordinator():
    return WriteCoordinator()


@pytest.fixture
def trade_processor(repository, coordinator):
    return TradeProcessor(repository, coordinator)


@pytest.fixture
def account_queries(repository, coordinator):
    return AccountQueries(repository, coordinator)


@pytest.fixture
def interpreter(trade_processor, account_queries):
    return CommandInterpreter(trade_processor, account_queries, CommandParser(default_user_id=1))
