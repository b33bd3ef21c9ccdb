"""Database package for fusion payments."""
from .connection import close_db, create_engine, create_session_factory, init_db
from .models import Base, PaymentRecord
from .store import PaymentRecordStore

__all__ = [
    "Base",
    "PaymentRecord",
    "PaymentRecordStore",
    "close_db",
    "create_engine",
    "create_session_factory",
    "init_db",
]
