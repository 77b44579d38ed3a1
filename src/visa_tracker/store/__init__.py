"""External table store boundary."""

from visa_tracker.store.base import ConfirmValue, StoreError, TableStore, column_letter
from visa_tracker.store.sheets_api import (
    AuthenticationError,
    RateLimitError,
    SheetsAPIClient,
    SheetsAPIError,
    TableNotFoundError,
)

__all__ = [
    "AuthenticationError",
    "ConfirmValue",
    "RateLimitError",
    "SheetsAPIClient",
    "SheetsAPIError",
    "StoreError",
    "TableNotFoundError",
    "TableStore",
    "column_letter",
]
