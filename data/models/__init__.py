"""Data models for the ledger.

This module contains the core data structures used throughout the ledger,
designed to work with the memory, CSV and SQLite backends.
"""

from .user import User
from .holding import Holding

__all__ = ['User', 'Holding']
