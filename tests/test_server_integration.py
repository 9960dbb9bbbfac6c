"""
End-to-end tests: a real LedgerServer on a loopback port driven through
LedgerConnection, plus the start-up helpers in server.py.
"""

import json
import logging
import os
import shutil
import socket
import tempfile
import threading
import time
import unittest
from unittest.mock import patch
from decimal import Decimal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings
from data.repositories.memory_repository import InMemoryRepository
from data.write_coordinator import WriteCoordinator
from portfolio.account_queries import AccountQueries
from portfolio.trade_processor import TradeProcessor
from protocol.client_connection import LedgerConnection, LedgerConnectionError
from protocol.commands import CommandParser
from protocol.connection import LedgerServer
import server as server_main


class RunningServerTestCase(unittest.TestCase):
    """Starts a server on an ephemeral port in a background thread."""

    def make_repository(self):
        return InMemoryRepository()

    def setUp(self):
        self.repository = self.make_repository()
        self.repository.seed_default_user(
            user_name="Rob_bob",
            cash_balance=Decimal("100.00"),
            first_name="Robby",
            last_name="Bobby"
        )
        coordinator = WriteCoordinator()
        self.server = LedgerServer(
            ("127.0.0.1", 0),
            repository=self.repository,
            coordinator=coordinator,
            trade_processor=TradeProcessor(self.repository, coordinator),
            account_queries=AccountQueries(self.repository, coordinator),
            parser=CommandParser(default_user_id=1)
        )
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def tearDown(self):
        if not self.server.shutdown_event.is_set():
            self.server.shutdown()
        self.thread.join(5)
        self.server.server_close()
        self.server.close_ledger(drain_timeout=5)

    def connect(self):
        connection = LedgerConnection("127.0.0.1", self.server.port)
        connection.connect()
        self.addCleanup(connection.close)
        return connection


class TestSession(RunningServerTestCase):

    def test_buy_then_balance(self):
        conn = self.connect()
        self.assertEqual(
            conn.send_command("BUY MSFT 3.4 1.35 1"),
            "200 OK\nBOUGHT: New balance: 3.40 MSFT. USD balance $95.41\n"
        )
        self.assertEqual(conn.send_command("BALANCE"), "200 OK\nBalance for user Robby Bobby: $95.41\n")

    def test_list_multi_line_response(self):
        conn = self.connect()
        conn.send_command("BUY MSFT 3.4 1.35 1")
        conn.send_command("BUY AAPL 2 1.45 1")
        self.assertEqual(
            conn.send_command("LIST"),
            "200 OK\nThe list of records in the Stocks database for user 1:\n1 MSFT 3.40 1\n2 AAPL 2.00 1\n"
        )

    def test_errors_keep_connection_open(self):
        conn = self.connect()
        self.assertEqual(conn.send_command("HELLO"), "400 invalid command\n")
        self.assertTrue(conn.send_command("SELL MSFT 5 1.00 1").startswith("403 message format error\n"))
        self.assertTrue(conn.send_command("BALANCE").startswith("200 OK"))

    def test_crlf_line_endings(self):
        conn = self.connect()
        conn._sock.sendall(b"BALANCE\r\n")
        self.assertEqual(conn._read_response(), "200 OK\nBalance for user Robby Bobby: $100.00\n")

    def test_quit_closes_only_this_connection(self):
        first = self.connect()
        second = self.connect()
        self.assertEqual(first.send_command("QUIT"), "200 OK\n")
        # server side has closed: further reads see end of stream
        self.assertEqual(first._sock.recv(1), b"")
        self.assertTrue(second.send_command("LIST").startswith("200 OK"))
        self.assertFalse(self.server.shutdown_event.is_set())

    def test_trades_from_several_clients_are_atomic(self):
        errors = []

        def trade():
            try:
                conn = LedgerConnection("127.0.0.1", self.server.port)
                with conn:
                    for _ in range(5):
                        conn.send_command("BUY MSFT 1 1 1")
                    conn.send_command("QUIT")
            except LedgerConnectionError as e:
                errors.append(e)

        threads = [threading.Thread(target=trade) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        self.assertEqual(errors, [])
        self.assertEqual(self.repository.get_user(1).cash_balance, Decimal("80.00"))
        self.assertEqual(self.repository.get_holding(1, "MSFT").quantity, Decimal("20"))


class TestShutdown(RunningServerTestCase):

    def test_shutdown_stops_server_after_reply(self):
        conn = self.connect()
        self.assertEqual(conn.send_command("SHUTDOWN"), "200 OK\n")
        self.thread.join(5)
        self.assertFalse(self.thread.is_alive())
        self.assertTrue(self.server.shutdown_event.is_set())

        self.server.close_ledger(drain_timeout=5)
        self.assertTrue(self.repository.closed)
        self.assertFalse(self.server.coordinator.accepting)

    def test_close_ledger_disconnects_idle_clients(self):
        idle = self.connect()
        self.connect().send_command("SHUTDOWN")
        self.thread.join(5)
        self.server.close_ledger(drain_timeout=5)
        idle._sock.settimeout(5)
        self.assertEqual(idle._sock.recv(1), b"")


class BlockingRepository(InMemoryRepository):
    """Holds every holding update until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.committed = None

    def upsert_holding_delta(self, user_id, symbol, delta):
        self.entered.set()
        self.release.wait(10)
        holding = super().upsert_holding_delta(user_id, symbol, delta)
        self.committed = holding
        return holding


class TestShutdownWaitsForTrades(RunningServerTestCase):

    def make_repository(self):
        return BlockingRepository()

    def tearDown(self):
        self.repository.release.set()
        super().tearDown()

    def test_store_closes_only_after_in_flight_buy(self):
        buyer = self.connect()
        buyer._sock.sendall(b"BUY MSFT 2 1.50 1\n")
        self.assertTrue(self.repository.entered.wait(5))

        self.assertEqual(self.connect().send_command("SHUTDOWN"), "200 OK\n")
        self.thread.join(5)
        self.assertFalse(self.thread.is_alive())

        closer = threading.Thread(target=self.server.close_ledger, kwargs={'drain_timeout': 10})
        closer.start()
        closer.join(0.3)
        self.assertTrue(closer.is_alive())
        self.assertIsNone(self.repository.committed)
        self.assertFalse(self.repository.closed)

        self.repository.release.set()
        closer.join(10)
        self.assertFalse(closer.is_alive())
        self.assertEqual(self.repository.committed.quantity, Decimal("2"))
        self.assertTrue(self.repository.closed)
        self.assertEqual(self.server.coordinator.in_flight, 0)

    def test_new_trade_after_shutdown_is_refused(self):
        self.repository.release.set()
        late = self.connect()
        self.connect().send_command("SHUTDOWN")
        self.thread.join(5)
        self.server.coordinator.drain(timeout=5)
        self.assertEqual(
            late.send_command("BUY MSFT 1 1 1"),
            "500 internal server error\nLedger is shutting down\n"
        )
        self.assertIsNone(self.repository.committed)


class TestClientConnection(unittest.TestCase):

    def test_unknown_host(self):
        with self.assertRaises(LedgerConnectionError) as ctx:
            LedgerConnection("no-such-host.invalid", 5432).connect()
        self.assertIn("unknown host", str(ctx.exception))

    def test_send_before_connect(self):
        with self.assertRaises(LedgerConnectionError):
            LedgerConnection("127.0.0.1").send_command("LIST")


class TestServerStartup(unittest.TestCase):

    def make_settings(self):
        settings = Settings()
        settings.set('repository.type', 'memory')
        settings.set('server.host', '127.0.0.1')
        settings.set('server.port', 0)
        return settings

    def test_parse_arguments(self):
        args = server_main.parse_command_line_arguments(
            ['--port', '6000', '--repository', 'csv', '--data-dir', 'd', '--debug']
        )
        settings = self.make_settings()
        server_main.apply_argument_overrides(settings, args)
        self.assertEqual(settings.get_server_address(), ('127.0.0.1', 6000))
        self.assertEqual(settings.get_repository_config(), {'type': 'csv', 'data_directory': 'd'})
        self.assertEqual(settings.get('logging.level'), 'DEBUG')

    def test_initialize_seeds_default_user(self):
        system = server_main.initialize_ledger(self.make_settings())
        try:
            user = system.repository.get_user(1)
            self.assertEqual(user.display_name, "Robby Bobby")
            self.assertEqual(user.cash_balance, Decimal("100.00"))
            self.assertEqual(system.parser.default_user_id, 1)
        finally:
            system.repository.close()

    def test_unknown_repository_type_fails_startup(self):
        settings = self.make_settings()
        settings.set('repository.type', 'nosql')
        with self.assertRaises(server_main.InitializationError):
            server_main.initialize_ledger(settings)

    def test_port_in_use_fails_startup(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(('127.0.0.1', 0))
        blocker.listen(1)
        try:
            settings = self.make_settings()
            settings.set('server.port', blocker.getsockname()[1])
            system = server_main.initialize_ledger(settings)
            try:
                with self.assertRaises(server_main.InitializationError):
                    server_main.create_server(system)
            finally:
                system.repository.close()
        finally:
            blocker.close()


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@patch.dict(os.environ, {}, clear=True)
class TestServerMain(unittest.TestCase):
    """Exit codes of the server entry point."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.temp_dir, ignore_errors=True)
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        self.addCleanup(self._restore_root_logger, handlers, level)

    @staticmethod
    def _restore_root_logger(handlers, level):
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)

    def write_config(self, port, **overrides):
        config = {
            'repository': {'type': 'memory'},
            'server': {'host': '127.0.0.1', 'port': port},
            'logging': {'level': 'INFO', 'file': os.path.join(self.temp_dir, 'server.log')},
        }
        for section, values in overrides.items():
            config.setdefault(section, {}).update(values)
        config_path = os.path.join(self.temp_dir, 'ledger.json')
        with open(config_path, 'w') as f:
            json.dump(config, f)
        return config_path

    def run_main(self, config_path):
        return server_main.main(['--config', config_path])

    def connect_when_ready(self, port, timeout=10):
        deadline = time.monotonic() + timeout
        while True:
            connection = LedgerConnection("127.0.0.1", port)
            try:
                connection.connect()
                self.addCleanup(connection.close)
                return connection
            except LedgerConnectionError:
                if time.monotonic() > deadline:
                    raise
                time.sleep(0.05)

    def test_exit_zero_after_shutdown(self):
        port = free_port()
        config_path = self.write_config(port)
        result = {}
        runner = threading.Thread(target=lambda: result.update(code=self.run_main(config_path)), daemon=True)
        runner.start()

        conn = self.connect_when_ready(port)
        self.assertEqual(conn.send_command("BALANCE"), "200 OK\nBalance for user Robby Bobby: $100.00\n")
        self.assertEqual(conn.send_command("SHUTDOWN"), "200 OK\n")

        runner.join(10)
        self.assertFalse(runner.is_alive())
        self.assertEqual(result, {'code': 0})

    def test_exit_one_when_port_is_taken(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(('127.0.0.1', 0))
        blocker.listen(1)
        self.addCleanup(blocker.close)
        self.assertEqual(self.run_main(self.write_config(blocker.getsockname()[1])), 1)

    def test_exit_one_when_store_cannot_open(self):
        not_a_directory = os.path.join(self.temp_dir, 'occupied')
        with open(not_a_directory, 'w') as f:
            f.write('x')
        config_path = self.write_config(
            free_port(),
            repository={'type': 'csv', 'csv': {'data_directory': not_a_directory}}
        )
        self.assertEqual(self.run_main(config_path), 1)

    def test_exit_one_on_non_numeric_port_variable(self):
        config_path = self.write_config(free_port())
        with patch.dict(os.environ, {'LEDGER_PORT': 'abc'}):
            self.assertEqual(self.run_main(config_path), 1)

    def test_exit_one_on_unknown_log_level(self):
        config_path = self.write_config(free_port(), logging={'level': 'LOUD'})
        self.assertEqual(self.run_main(config_path), 1)

    def test_setup_logging_rejects_unknown_level(self):
        settings = Settings()
        settings.set('logging.level', 'LOUD')
        settings.set('logging.file', os.path.join(self.temp_dir, 'server.log'))
        with self.assertRaises(server_main.InitializationError):
            server_main.setup_logging(settings)


if __name__ == '__main__':
    unittest.main()
