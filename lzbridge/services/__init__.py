"""Service layer helpers"""

from .history import HistoryEntry, TransferHistory

__all__ = [
    "HistoryEntry",
    "TransferHistory",
]
