"""
Financial calculations for the ledger.

This module provides precise financial calculations using Decimal arithmetic
to avoid floating-point precision issues in monetary calculations.
"""

from .calculations import (
    to_decimal,
    calculate_trade_total,
    round_for_display,
    format_amount,
    normalize_stored_decimal,
    validate_no_float_usage,
    apply_delta
)

__all__ = [
    'to_decimal',
    'calculate_trade_total',
    'round_for_display',
    'format_amount',
    'normalize_stored_decimal',
    'validate_no_float_usage',
    'apply_delta'
]
