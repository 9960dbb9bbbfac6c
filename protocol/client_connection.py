"""Client side of the ledger wire protocol."""

from __future__ import annotations

import logging
import socket
from typing import Optional

from config.constants import DEFAULT_PORT

logger = logging.getLogger(__name__)

# Responses carry no length prefix: after the first bytes arrive, reading
# stops once the server has been quiet for this long.
RESPONSE_IDLE_SECONDS = 0.2
RESPONSE_TIMEOUT_SECONDS = 10.0
RECV_CHUNK = 4096


class LedgerConnectionError(Exception):
    """Raised when the server cannot be resolved, reached or read."""
    pass


class LedgerConnection:
    """A TCP connection to a ledger server that sends commands and reads responses."""

    def __init__(self, host: str, port: int = DEFAULT_PORT,
                 timeout: float = RESPONSE_TIMEOUT_SECONDS,
                 idle_timeout: float = RESPONSE_IDLE_SECONDS):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.idle_timeout = idle_timeout
        self._sock: Optional[socket.socket] = None

    def connect(self) -> None:
        """Resolve the host and open the connection.

        Raises:
            LedgerConnectionError: On unknown host or refused connection
        """
        try:
            address = socket.gethostbyname(self.host)
        except socket.gaierror as e:
            raise LedgerConnectionError(f"unknown host: {self.host}") from e

        try:
            self._sock = socket.create_connection((address, self.port), timeout=self.timeout)
        except OSError as e:
            raise LedgerConnectionError(f"cannot connect to {self.host}:{self.port}: {e}") from e
        logger.info(f"Connected to {self.host}:{self.port}")

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def send_command(self, line: str) -> str:
        """Send one command line and return the server's full response text.

        Returns:
            The response, or an empty string if the server closed the connection

        Raises:
            LedgerConnectionError: If not connected or the socket fails
        """
        if self._sock is None:
            raise LedgerConnectionError("not connected")
        try:
            self._sock.sendall((line.rstrip("\r\n") + "\n").encode("utf-8"))
            return self._read_response()
        except OSError as e:
            raise LedgerConnectionError(f"connection to {self.host}:{self.port} failed: {e}") from e

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> LedgerConnection:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _read_response(self) -> str:
        self._sock.settimeout(self.timeout)
        first = self._sock.recv(RECV_CHUNK)
        if not first:
            return ""
        chunks = [first]
        self._sock.settimeout(self.idle_timeout)
        try:
            while True:
                chunk = self._sock.recv(RECV_CHUNK)
                if not chunk:
                    break
                chunks.append(chunk)
        except socket.timeout:
            # quiet period reached, response complete
            pass
        finally:
            self._sock.settimeout(self.timeout)
        return b"".join(chunks).decode("utf-8", errors="replace")
