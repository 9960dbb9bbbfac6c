"""Response vocabulary of the ledger wire protocol.

A response is a status line ``<code> <reason>`` followed by zero or more
detail lines. Internally every failure carries an ErrorKind; several kinds
share the 403 status on the wire, and ERROR_STATUS spells that mapping out.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from data.models.holding import Holding
from financial.calculations import format_amount
from portfolio.account_queries import BalanceView
from portfolio.trade_processor import TradeResult


class Status(Enum):
    OK = (200, "OK")
    INVALID_COMMAND = (400, "invalid command")
    MESSAGE_FORMAT_ERROR = (403, "message format error")
    INTERNAL_ERROR = (500, "internal server error")

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def reason(self) -> str:
        return self.value[1]

    @property
    def status_line(self) -> str:
        return f"{self.code} {self.reason}"


class ErrorKind(Enum):
    FORMAT_ERROR = "format_error"
    UNKNOWN_COMMAND = "unknown_command"
    INVALID_ARGUMENT = "invalid_argument"
    USER_NOT_FOUND = "user_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_HOLDINGS = "insufficient_holdings"
    STORE_FAILURE = "store_failure"
    INTERNAL_ERROR = "internal_error"


ERROR_STATUS: Dict[ErrorKind, Status] = {
    ErrorKind.FORMAT_ERROR: Status.MESSAGE_FORMAT_ERROR,
    ErrorKind.UNKNOWN_COMMAND: Status.INVALID_COMMAND,
    # Business-rule failures stay on 403 for compatibility with existing clients
    ErrorKind.INVALID_ARGUMENT: Status.MESSAGE_FORMAT_ERROR,
    ErrorKind.USER_NOT_FOUND: Status.MESSAGE_FORMAT_ERROR,
    ErrorKind.INSUFFICIENT_FUNDS: Status.MESSAGE_FORMAT_ERROR,
    ErrorKind.INSUFFICIENT_HOLDINGS: Status.MESSAGE_FORMAT_ERROR,
    ErrorKind.STORE_FAILURE: Status.INTERNAL_ERROR,
    ErrorKind.INTERNAL_ERROR: Status.INTERNAL_ERROR,
}


@dataclass(frozen=True)
class Response:
    status: Status
    details: Tuple[str, ...] = ()
    error_kind: Optional[ErrorKind] = None

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK

    def render(self) -> str:
        """Wire text: status line plus detail lines, each newline-terminated."""
        lines = [self.status.status_line, *self.details]
        return "\n".join(lines) + "\n"


def ok(*details: str) -> Response:
    return Response(Status.OK, tuple(details))


def error(kind: ErrorKind, message: Optional[str] = None) -> Response:
    details = (message,) if message else ()
    return Response(ERROR_STATUS[kind], details, error_kind=kind)


def render_trade(result: TradeResult) -> Response:
    """BOUGHT/SOLD confirmation with the new holding quantity and cash."""
    quantity = format_amount(result.quantity)
    cash = format_amount(result.cash_balance)
    if result.action == 'BUY':
        return ok(f"BOUGHT: New balance: {quantity} {result.symbol}. USD balance ${cash}")
    return ok(f"SOLD: New balance: {quantity} {result.symbol}. USD ${cash}")


def render_holdings(user_id: int, holdings: Iterable[Holding]) -> Response:
    lines: List[str] = [f"The list of records in the Stocks database for user {user_id}:"]
    rows = [
        f"{h.holding_id} {h.symbol} {format_amount(h.quantity)} {h.user_id}"
        for h in holdings
    ]
    lines.extend(rows or ["No stocks found for this user"])
    return ok(*lines)


def render_balance(view: BalanceView) -> Response:
    return ok(f"Balance for user {view.display_name}: ${format_amount(view.cash_balance)}")
