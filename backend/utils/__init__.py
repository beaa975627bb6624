"""
Utils Package

Provides utility modules for:
- validation_errors: {success: false, message} errors and input parsing helpers
"""

from .validation_errors import (
    LedgerError,
    LedgerValidationError,
    LedgerNotFoundError,
    LedgerPermissionError,
    ledger_error_handler,
    parse_iso_date,
)

__all__ = [
    'LedgerError',
    'LedgerValidationError',
    'LedgerNotFoundError',
    'LedgerPermissionError',
    'ledger_error_handler',
    'parse_iso_date',
]
