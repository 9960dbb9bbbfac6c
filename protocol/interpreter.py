"""Per-connection command interpreter.

Each connection owns one CommandInterpreter. It moves between OPEN and
PROCESSING for every line and ends in CLOSED after QUIT or SHUTDOWN.
SHUTDOWN additionally fires the process-wide shutdown callback once the
driver reports the response as sent.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from data.repositories.base_repository import RepositoryError
from portfolio.account_queries import AccountQueries
from portfolio.trade_processor import (
    TradeProcessor,
    TradeProcessorError,
    InvalidArgumentError,
    UserNotFoundError,
    InsufficientFundsError,
    InsufficientHoldingsError,
)
from .commands import Command, CommandFormatError, CommandParser, CommandType
from .responses import (
    ErrorKind,
    Response,
    error,
    ok,
    render_balance,
    render_holdings,
    render_trade,
)

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    OPEN = "open"
    PROCESSING = "processing"
    CLOSED = "closed"


_TRADE_ERROR_KINDS = (
    (InvalidArgumentError, ErrorKind.INVALID_ARGUMENT),
    (UserNotFoundError, ErrorKind.USER_NOT_FOUND),
    (InsufficientFundsError, ErrorKind.INSUFFICIENT_FUNDS),
    (InsufficientHoldingsError, ErrorKind.INSUFFICIENT_HOLDINGS),
)


def classify_trade_error(exc: TradeProcessorError) -> ErrorKind:
    for exc_type, kind in _TRADE_ERROR_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.INTERNAL_ERROR


class InterpreterClosedError(Exception):
    """Raised when a line is fed to an interpreter that is already CLOSED."""
    pass


class CommandInterpreter:
    """Parses, dispatches and renders the commands of one connection."""

    def __init__(self, trade_processor: TradeProcessor, account_queries: AccountQueries,
                 parser: CommandParser, on_shutdown: Optional[Callable[[], None]] = None):
        self.trade_processor = trade_processor
        self.account_queries = account_queries
        self.parser = parser
        self.on_shutdown = on_shutdown
        self._state = ConnectionState.OPEN
        self._shutdown_requested = False
        self._shutdown_signalled = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def handle_line(self, line: str) -> Response:
        """Process one request line and return its response.

        Raises:
            InterpreterClosedError: If QUIT or SHUTDOWN was already handled
        """
        if self.closed:
            raise InterpreterClosedError("Connection already closed")

        logger.info(f"Received: {line}")
        self._state = ConnectionState.PROCESSING
        next_state = ConnectionState.OPEN
        try:
            try:
                command = self.parser.parse(line)
            except CommandFormatError as e:
                return error(ErrorKind.FORMAT_ERROR, str(e))

            if command.type in (CommandType.QUIT, CommandType.SHUTDOWN):
                next_state = ConnectionState.CLOSED
                if command.type is CommandType.SHUTDOWN:
                    self._shutdown_requested = True
                return ok()

            return self._dispatch(command)
        finally:
            self._state = next_state

    def acknowledge_sent(self) -> None:
        """Called by the connection driver after the response is flushed.

        Fires the shutdown callback exactly once if SHUTDOWN was received.
        """
        if self._shutdown_requested and not self._shutdown_signalled:
            self._shutdown_signalled = True
            logger.info("Shutdown requested by client")
            if self.on_shutdown is not None:
                self.on_shutdown()

    def _dispatch(self, command: Command) -> Response:
        try:
            if command.type is CommandType.BUY:
                result = self.trade_processor.execute_buy_trade(
                    command.symbol, command.amount, command.price, command.user_id
                )
                return render_trade(result)

            if command.type is CommandType.SELL:
                result = self.trade_processor.execute_sell_trade(
                    command.symbol, command.amount, command.price, command.user_id
                )
                return render_trade(result)

            if command.type is CommandType.LIST:
                holdings = self.account_queries.list_holdings(command.user_id)
                return render_holdings(command.user_id, holdings)

            if command.type is CommandType.BALANCE:
                view = self.account_queries.get_balance(command.user_id)
                return render_balance(view)

            return error(ErrorKind.UNKNOWN_COMMAND)

        except TradeProcessorError as e:
            return error(classify_trade_error(e), str(e))
        except RepositoryError as e:
            logger.error(f"Store failure while handling '{command.raw}': {e}")
            return error(ErrorKind.STORE_FAILURE, str(e))
        except Exception as e:
            logger.error(f"Unexpected error while handling '{command.raw}': {e}", exc_info=True)
            return error(ErrorKind.INTERNAL_ERROR, "Internal error")
