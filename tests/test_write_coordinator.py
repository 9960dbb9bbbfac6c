"""Tests for per-user serialization and shutdown draining."""

import threading
import time
import unittest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from data.write_coordinator import WriteCoordinator, LedgerShuttingDownError
from data.repositories.base_repository import RepositoryError


class TestWriteCoordinator(unittest.TestCase):

    def setUp(self):
        self.coordinator = WriteCoordinator()

    def test_tracks_in_flight(self):
        self.assertEqual(self.coordinator.in_flight, 0)
        with self.coordinator.user_lock(1):
            self.assertEqual(self.coordinator.in_flight, 1)
            with self.coordinator.user_lock(1):
                self.assertEqual(self.coordinator.in_flight, 2)
        self.assertEqual(self.coordinator.in_flight, 0)

    def test_released_on_exception(self):
        with self.assertRaises(KeyError):
            with self.coordinator.user_lock(1):
                raise KeyError("boom")
        self.assertEqual(self.coordinator.in_flight, 0)

    def test_same_user_is_serialized(self):
        active = []
        overlaps = []
        guard = threading.Lock()

        def work():
            with self.coordinator.user_lock(7):
                with guard:
                    active.append(1)
                    if len(active) > 1:
                        overlaps.append(True)
                time.sleep(0.01)
                with guard:
                    active.pop()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(overlaps, [])

    def test_different_users_run_in_parallel(self):
        entered = threading.Event()
        release = threading.Event()

        def hold_user_one():
            with self.coordinator.user_lock(1):
                entered.set()
                release.wait(2)

        holder = threading.Thread(target=hold_user_one)
        holder.start()
        self.assertTrue(entered.wait(2))
        try:
            acquired = threading.Event()

            def use_user_two():
                with self.coordinator.user_lock(2):
                    acquired.set()

            other = threading.Thread(target=use_user_two)
            other.start()
            self.assertTrue(acquired.wait(2))
            other.join()
        finally:
            release.set()
            holder.join()

    def test_drain_waits_for_in_flight(self):
        entered = threading.Event()
        release = threading.Event()

        def hold():
            with self.coordinator.user_lock(1):
                entered.set()
                release.wait(2)

        worker = threading.Thread(target=hold)
        worker.start()
        self.assertTrue(entered.wait(2))

        self.assertFalse(self.coordinator.drain(timeout=0.05))
        release.set()
        worker.join()
        self.assertTrue(self.coordinator.drain(timeout=1))

    def test_rejects_after_drain(self):
        self.assertTrue(self.coordinator.drain())
        self.assertFalse(self.coordinator.accepting)
        with self.assertRaises(LedgerShuttingDownError):
            with self.coordinator.user_lock(1):
                pass
        self.assertEqual(self.coordinator.in_flight, 0)

    def test_idle_locks_are_dropped(self):
        for user_id in range(5000):
            with self.coordinator.user_lock(user_id):
                self.assertEqual(self.coordinator.tracked_users, 1)
        self.assertEqual(self.coordinator.tracked_users, 0)

    def test_nested_lock_kept_until_outermost_exit(self):
        with self.coordinator.user_lock(3):
            with self.coordinator.user_lock(3):
                self.assertEqual(self.coordinator.tracked_users, 1)
            self.assertEqual(self.coordinator.tracked_users, 1)
        self.assertEqual(self.coordinator.tracked_users, 0)

    def test_waiter_shares_the_held_lock(self):
        entered = threading.Event()
        release = threading.Event()
        order = []

        def hold():
            with self.coordinator.user_lock(5):
                entered.set()
                release.wait(2)
                order.append("first")

        def wait_then_enter():
            with self.coordinator.user_lock(5):
                order.append("second")

        holder = threading.Thread(target=hold)
        holder.start()
        self.assertTrue(entered.wait(2))
        waiter = threading.Thread(target=wait_then_enter)
        waiter.start()
        time.sleep(0.05)
        self.assertEqual(self.coordinator.tracked_users, 1)
        release.set()
        holder.join()
        waiter.join()
        self.assertEqual(order, ["first", "second"])
        self.assertEqual(self.coordinator.tracked_users, 0)

    def test_drain_timeout_is_logged(self):
        entered = threading.Event()
        release = threading.Event()

        def hold():
            with self.coordinator.user_lock(1):
                entered.set()
                release.wait(2)

        worker = threading.Thread(target=hold)
        worker.start()
        self.assertTrue(entered.wait(2))
        try:
            with self.assertLogs('data.write_coordinator', level='WARNING') as logs:
                self.assertFalse(self.coordinator.drain(timeout=0.05))
            self.assertIn("Timed out waiting", logs.output[0])
        finally:
            release.set()
            worker.join()

    def test_shutting_down_is_a_repository_error(self):
        self.assertTrue(issubclass(LedgerShuttingDownError, RepositoryError))


if __name__ == '__main__':
    unittest.main()
