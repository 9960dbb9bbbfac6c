"""Interactive client for the stock ledger server.

Shows the command menu, sends each entered line to the server and prints
the response until QUIT, SHUTDOWN, end of input or the server closing the
connection.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from config.settings import get_settings
from display.console_output import print_error, print_info, print_panel, print_response, print_success
from protocol.client_connection import LedgerConnection, LedgerConnectionError

logger = logging.getLogger(__name__)

MENU_LINES = [
    "Available Commands:",
    "1. BUY <stock_symbol> <amount> <price_per_stock> <user_id>",
    "   Example: BUY MSFT 3.4 1.35 1",
    "2. SELL <stock_symbol> <amount> <price_per_stock> <user_id>",
    "   Example: SELL APPL 2 1.45 1",
    "3. LIST [user_id]",
    "   Example: LIST 1 (or just LIST for default user)",
    "4. BALANCE [user_id]",
    "   Example: BALANCE 1 (or just BALANCE for default user)",
    "5. QUIT - Close client connection",
    "6. SHUTDOWN - Shutdown the server",
]

TERMINAL_COMMANDS = ("QUIT", "SHUTDOWN")


def parse_command_line_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    host, port = get_settings().get_server_address()
    parser = argparse.ArgumentParser(
        description="Stock Ledger Client - interactive trading terminal",
        usage="%(prog)s <hostname> [--port PORT]"
    )
    parser.add_argument('hostname', help='Server host name or address')
    parser.add_argument('--port', type=int, default=port, help=f'Server port (default: {port})')
    return parser.parse_args(argv)


def is_terminal_command(line: str) -> bool:
    """True when the line's verb ends the session once the server acknowledges it."""
    tokens = line.split()
    return bool(tokens) and tokens[0] in TERMINAL_COMMANDS


def run_session(connection: LedgerConnection, read_line=input) -> int:
    """Prompt, send and print until the session ends.

    Args:
        connection: An open connection to the server
        read_line: Prompt function, replaceable for scripted sessions

    Returns:
        Process exit code
    """
    while True:
        print_panel(MENU_LINES, title="Stock Trading System")
        try:
            line = read_line("Enter command: ")
        except (EOFError, KeyboardInterrupt):
            print()
            line = "QUIT"

        response = connection.send_command(line)
        if not response:
            print_info("Server closed the connection")
            return 0

        print_response(response)
        if is_terminal_command(line) and response.startswith("200"):
            return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ledger client."""
    args = parse_command_line_arguments(argv)
    connection = LedgerConnection(args.hostname, args.port)

    print_info(f"Connecting to server at {args.hostname}:{args.port}...")
    try:
        connection.connect()
    except LedgerConnectionError as e:
        print_error(f"client: {e}")
        return 1
    print_success("Connected to server successfully!")

    try:
        return run_session(connection)
    except LedgerConnectionError as e:
        print_error(f"client: {e}")
        return 1
    finally:
        connection.close()


if __name__ == "__main__":
    sys.exit(main())
