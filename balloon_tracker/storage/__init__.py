"""Storage backends for the submission ledger."""

from .base_ledger import LedgerProtocol
from .database import init_db, session_scope
from .ledger import SQLAlchemyLedger

__all__ = [
    "LedgerProtocol",
    "SQLAlchemyLedger",
    "init_db",
    "session_scope",
]
