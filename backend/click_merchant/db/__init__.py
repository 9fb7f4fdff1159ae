"""
Database package for the Click merchant service.

Exports engine/session setup, ORM models and the transaction store.
"""
from .init_db import create_engine, create_session_factory, initialize_database
from .models import (
    Base,
    ProductModel,
    UserModel,
    TransactionModel,
)
from .store import TransactionStore

__all__ = [
    "create_engine",
    "create_session_factory",
    "initialize_database",
    "Base",
    "ProductModel",
    "UserModel",
    "TransactionModel",
    "TransactionStore",
]
