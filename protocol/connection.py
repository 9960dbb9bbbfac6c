"""TCP connection driver for the ledger server.

LedgerServer accepts connections and serves each one on its own thread.
LedgerRequestHandler reads request lines, feeds them to a fresh
CommandInterpreter and writes every response back before reading on.
"""

from __future__ import annotations

import logging
import socket
import socketserver
import threading
from typing import Optional, Set, Tuple

from config.constants import MAX_LINE_LENGTH, MAX_PENDING_CONNECTIONS
from data.repositories.base_repository import BaseRepository
from data.write_coordinator import WriteCoordinator
from portfolio.account_queries import AccountQueries
from portfolio.trade_processor import TradeProcessor
from .commands import CommandParser
from .interpreter import CommandInterpreter

logger = logging.getLogger(__name__)

# Lines longer than this are cut and the remainder treated as a new line
MAX_READ_BYTES = MAX_LINE_LENGTH * 4


class LedgerRequestHandler(socketserver.StreamRequestHandler):
    """Serves one client connection until QUIT, SHUTDOWN or EOF."""

    def handle(self) -> None:
        server: LedgerServer = self.server
        interpreter = server.create_interpreter()
        logger.info(f"Client connected: {self.client_address[0]}:{self.client_address[1]}")
        server.register_connection(self.request)
        try:
            while not interpreter.closed:
                raw = self.rfile.readline(MAX_READ_BYTES)
                if not raw:
                    break
                line = raw.decode('utf-8', errors='replace').rstrip('\r\n')

                response = interpreter.handle_line(line)
                self.wfile.write(response.render().encode('utf-8'))
                self.wfile.flush()
                interpreter.acknowledge_sent()
        except (ConnectionError, OSError) as e:
            logger.warning(f"Connection error with {self.client_address[0]}: {e}")
        finally:
            server.unregister_connection(self.request)
            logger.info(f"Client disconnected: {self.client_address[0]}:{self.client_address[1]}")


class LedgerServer(socketserver.ThreadingTCPServer):
    """Threaded TCP server sharing one ledger store across all connections.

    The store, coordinator and operations are owned by the caller and
    handed in; ``close_ledger`` closes the store exactly once after
    in-flight operations have drained.
    """

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = MAX_PENDING_CONNECTIONS

    def __init__(self, server_address: Tuple[str, int], repository: BaseRepository,
                 coordinator: WriteCoordinator, trade_processor: TradeProcessor,
                 account_queries: AccountQueries, parser: CommandParser):
        self.repository = repository
        self.coordinator = coordinator
        self.trade_processor = trade_processor
        self.account_queries = account_queries
        self.parser = parser
        self.shutdown_event = threading.Event()
        self._connections: Set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        self._ledger_closed = False
        super().__init__(server_address, LedgerRequestHandler)

    @property
    def port(self) -> int:
        return self.server_address[1]

    def create_interpreter(self) -> CommandInterpreter:
        return CommandInterpreter(
            self.trade_processor,
            self.account_queries,
            self.parser,
            on_shutdown=self.request_shutdown
        )

    def request_shutdown(self) -> None:
        """Stop serve_forever from any thread, including a handler thread."""
        if self.shutdown_event.is_set():
            return
        self.shutdown_event.set()
        logger.info("Server shutting down...")
        # shutdown() blocks until serve_forever returns, so it cannot run on a handler thread
        threading.Thread(target=self.shutdown, name="ledger-shutdown", daemon=True).start()

    def close_ledger(self, drain_timeout: Optional[float] = None) -> None:
        """Drain in-flight operations, end open connections and close the store."""
        if self._ledger_closed:
            return
        self._ledger_closed = True
        self.coordinator.drain(timeout=drain_timeout)
        self._disconnect_all()
        self.repository.close()

    def register_connection(self, conn: socket.socket) -> None:
        with self._connections_lock:
            self._connections.add(conn)

    def unregister_connection(self, conn: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(conn)

    def _disconnect_all(self) -> None:
        with self._connections_lock:
            connections = list(self._connections)
        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Connection already closed: {e}")

    def handle_error(self, request, client_address) -> None:
        logger.error(f"Error while serving {client_address[0]}:{client_address[1]}", exc_info=True)
