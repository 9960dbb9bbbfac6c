"""Command line parsing for the ledger wire protocol.

One request line holds one command; tokens are separated by whitespace and
command names are case-sensitive:

    BUY     <symbol> <amount> <price> <user_id>
    SELL    <symbol> <amount> <price> <user_id>
    LIST    [<user_id>]
    BALANCE [<user_id>]
    QUIT
    SHUTDOWN
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from config.constants import DEFAULT_USER_ID
from financial.calculations import to_decimal

logger = logging.getLogger(__name__)


class CommandType(Enum):
    BUY = "BUY"
    SELL = "SELL"
    LIST = "LIST"
    BALANCE = "BALANCE"
    QUIT = "QUIT"
    SHUTDOWN = "SHUTDOWN"
    UNKNOWN = "UNKNOWN"


TRADE_COMMANDS = (CommandType.BUY, CommandType.SELL)
ACCOUNT_COMMANDS = (CommandType.LIST, CommandType.BALANCE)


class CommandFormatError(Exception):
    """Raised when a known command's arguments do not match its grammar."""

    def __init__(self, command_type: CommandType, line: str):
        self.command_type = command_type
        self.line = line
        super().__init__(f"Invalid {command_type.value} command format")


@dataclass(frozen=True)
class Command:
    """A parsed request line."""
    type: CommandType
    symbol: Optional[str] = None
    amount: Optional[Decimal] = None
    price: Optional[Decimal] = None
    user_id: Optional[int] = None
    raw: str = ""


class CommandParser:
    """Turns request lines into Command objects.

    LIST and BALANCE fall back to ``default_user_id`` when no user id is
    given. Numbers are parsed as exact Decimals; NaN and infinities are
    rejected.
    """

    def __init__(self, default_user_id: int = DEFAULT_USER_ID):
        self.default_user_id = default_user_id

    def parse(self, line: str) -> Command:
        """Parse one request line.

        An empty line or unrecognized leading token yields an UNKNOWN
        command rather than an error.

        Raises:
            CommandFormatError: If a known command has malformed arguments
        """
        tokens = line.split()
        if not tokens:
            return Command(CommandType.UNKNOWN, raw=line)

        try:
            command_type = CommandType(tokens[0])
        except ValueError:
            return Command(CommandType.UNKNOWN, raw=line)
        if command_type is CommandType.UNKNOWN:
            return Command(CommandType.UNKNOWN, raw=line)

        args = tokens[1:]
        if command_type in TRADE_COMMANDS:
            return self._parse_trade(command_type, args, line)
        if command_type in ACCOUNT_COMMANDS:
            return self._parse_account(command_type, args, line)

        # QUIT and SHUTDOWN ignore trailing tokens
        return Command(command_type, raw=line)

    def _parse_trade(self, command_type: CommandType, args: List[str], line: str) -> Command:
        if len(args) != 4:
            raise CommandFormatError(command_type, line)
        symbol, amount_text, price_text, user_text = args
        try:
            amount = to_decimal(amount_text)
            price = to_decimal(price_text)
            user_id = int(user_text)
        except ValueError as e:
            raise CommandFormatError(command_type, line) from e
        return Command(command_type, symbol=symbol, amount=amount, price=price, user_id=user_id, raw=line)

    def _parse_account(self, command_type: CommandType, args: List[str], line: str) -> Command:
        if not args:
            return Command(command_type, user_id=self.default_user_id, raw=line)
        if len(args) != 1:
            raise CommandFormatError(command_type, line)
        try:
            user_id = int(args[0])
        except ValueError as e:
            raise CommandFormatError(command_type, line) from e
        return Command(command_type, user_id=user_id, raw=line)
