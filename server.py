"""Stock ledger server.

Opens the ledger store, seeds the default user on first start, then serves
the line-oriented trading protocol over TCP with one thread per connection
until a client sends SHUTDOWN.

Exit codes: 0 on normal termination, 1 on any start-up failure (store
cannot be opened, port cannot be bound, bad configuration).
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from config.settings import Settings, configure_system
from config.constants import DEFAULT_BACKUP_DIR, LOG_FILE, VERSION
from data.repositories.base_repository import BaseRepository, RepositoryError
from data.repositories.repository_factory import RepositoryFactory
from data.write_coordinator import WriteCoordinator
from display.console_output import print_error, print_header, print_info, print_success, print_warning
from financial.calculations import to_decimal
from portfolio.account_queries import AccountQueries
from portfolio.trade_processor import TradeProcessor
from protocol.commands import CommandParser
from protocol.connection import LedgerServer

logger = logging.getLogger(__name__)


class InitializationError(Exception):
    """Raised when the server cannot start."""
    pass


@dataclass
class LedgerSystem:
    """Everything the server owns for its lifetime."""
    settings: Settings
    repository: BaseRepository
    coordinator: WriteCoordinator
    trade_processor: TradeProcessor
    account_queries: AccountQueries
    parser: CommandParser


def parse_command_line_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(
        description="Stock Ledger Server - line-oriented trading ledger over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python server.py                          # Listen on the configured port (5432)
  python server.py --port 6000              # Listen on another port
  python server.py --repository csv --data-dir ledger_data
  python server.py --config ledger.json     # Use custom configuration
  python server.py --debug                  # Enable debug logging
        """
    )

    parser.add_argument('--host', type=str, default=None, help='Interface to bind (overrides config)')
    parser.add_argument('--port', type=int, default=None, help='TCP port to listen on (overrides config)')
    parser.add_argument('--config', type=str, default=None, help='Path to configuration file')
    parser.add_argument(
        '--repository',
        type=str,
        default=None,
        choices=RepositoryFactory.get_available_types(),
        help='Ledger store backend (overrides config)'
    )
    parser.add_argument('--data-dir', type=str, default=None, help='CSV data directory (csv backend)')
    parser.add_argument('--db-path', type=str, default=None, help='SQLite database file (sqlite backend)')
    parser.add_argument('--backup', action='store_true', help='Back up the ledger store before serving')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'Stock Ledger Server {VERSION}')

    return parser.parse_args(argv)


def setup_logging(settings: Settings) -> None:
    """Setup logging configuration.

    Args:
        settings: System settings containing logging configuration

    Raises:
        InitializationError: If the configured level is not a logging level
    """
    log_config = settings.get_logging_config()
    level_name = str(log_config.get('level', 'INFO')).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise InitializationError(f"Unknown log level: {log_config.get('level')}")

    logging.basicConfig(
        level=level,
        format=log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
        handlers=[
            logging.FileHandler(log_config.get('file', LOG_FILE)),
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger.info(f"Logging configured - Level: {level_name}")


def apply_argument_overrides(settings: Settings, args: argparse.Namespace) -> None:
    if args.host:
        settings.set('server.host', args.host)
    if args.port is not None:
        settings.set('server.port', args.port)
    if args.repository:
        settings.set('repository.type', args.repository)
    if args.data_dir:
        settings.set('repository.csv.data_directory', args.data_dir)
    if args.db_path:
        settings.set('repository.sqlite.database_path', args.db_path)
    if args.debug:
        settings.set('logging.level', 'DEBUG')


def initialize_ledger(settings: Settings) -> LedgerSystem:
    """Open the store, seed the default user and wire up the operations.

    Raises:
        InitializationError: If the store cannot be opened or seeded
    """
    try:
        repository = RepositoryFactory.create_from_config(settings.get_repository_config())
    except (RepositoryError, ValueError, OSError) as e:
        raise InitializationError(f"Cannot open ledger store: {e}") from e

    try:
        seed = settings.get_seed_user_config()
        repository.seed_default_user(
            user_name=seed['user_name'],
            cash_balance=to_decimal(str(seed['cash_balance'])),
            first_name=seed.get('first_name'),
            last_name=seed.get('last_name'),
            password=seed.get('password')
        )
        issues = repository.validate_data_integrity()
        for issue in issues:
            logger.warning(f"Ledger integrity: {issue}")
    except (RepositoryError, KeyError, ValueError) as e:
        repository.close()
        raise InitializationError(f"Cannot initialize ledger store: {e}") from e

    coordinator = WriteCoordinator()
    return LedgerSystem(
        settings=settings,
        repository=repository,
        coordinator=coordinator,
        trade_processor=TradeProcessor(repository, coordinator),
        account_queries=AccountQueries(repository, coordinator),
        parser=CommandParser(default_user_id=settings.get_default_user_id())
    )


def backup_ledger(system: LedgerSystem) -> None:
    """Copy the store into a timestamped folder under the backup directory."""
    backup_root = Path(system.settings.get_backup_config().get('directory', DEFAULT_BACKUP_DIR))
    backup_path = backup_root / datetime.now().strftime("ledger_%Y%m%d_%H%M%S")
    try:
        system.repository.backup_data(str(backup_path))
    except RepositoryError as e:
        raise InitializationError(f"Backup failed: {e}") from e
    print_success(f"Ledger backed up to {backup_path}")


def create_server(system: LedgerSystem) -> LedgerServer:
    """Bind the TCP server.

    Raises:
        InitializationError: If the address cannot be bound
    """
    address = system.settings.get_server_address()
    try:
        return LedgerServer(
            address,
            repository=system.repository,
            coordinator=system.coordinator,
            trade_processor=system.trade_processor,
            account_queries=system.account_queries,
            parser=system.parser
        )
    except OSError as e:
        raise InitializationError(f"Cannot bind {address[0]}:{address[1]}: {e}") from e


def serve(server: LedgerServer) -> None:
    """Serve until SHUTDOWN or Ctrl-C, then close the ledger exactly once."""
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print_warning("\nInterrupted, shutting down")
    finally:
        server.server_close()
        server.close_ledger()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ledger server."""
    args = parse_command_line_arguments(argv)
    system: Optional[LedgerSystem] = None

    try:
        settings = configure_system(args.config)
        apply_argument_overrides(settings, args)
        setup_logging(settings)

        print_header("Stock Ledger Server", "🚀")
        if settings.is_development_mode():
            print_warning("Development mode: debug logging enabled")
        system = initialize_ledger(settings)
        print_success(f"Database initialized successfully ({settings.get_repository_type()} store)")

        if args.backup:
            backup_ledger(system)

        server = create_server(system)
        print_info(f"Server listening on port {server.port}...")
    except (InitializationError, ValueError) as e:
        # ValueError: malformed numeric setting (e.g. LEDGER_PORT=abc)
        print_error(f"Server initialization failed: {e}")
        logger.error(f"Server initialization failed: {e}", exc_info=True)
        if system is not None:
            system.repository.close()
        return 1

    serve(server)
    print_success("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
