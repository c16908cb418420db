"""Record store for credential and order records.

Provides SQLite database management and typed read/write stores.
"""

from tradegate.data.database import TradeDatabase
from tradegate.data.store import CredentialStore, OrderStore

__all__ = [
    "CredentialStore",
    "OrderStore",
    "TradeDatabase",
]
