"""
Storage Package.

This package manages all data persistence.

Modules:
- database: Engine, sessions and transaction scope
- models/: ORM models
- repositories/: Data access layer
"""

from .database import Database, DatabasePersistenceError

__all__ = [
    "Database",
    "DatabasePersistenceError",
]
