"""Data access layer for the ledger.

This module provides data models and repository patterns for accessing
users and holdings from various backends (memory, CSV, SQLite).
"""
