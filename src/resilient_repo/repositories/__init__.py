"""
Repository layer initialization module.

Exports the generic repository base and the table-backed implementation.

Usage:
    from resilient_repo.repositories import BaseRepository, SqlTableRepository
"""

from .base_repository import BaseRepository
from .table_repository import SqlTableRepository

__all__ = [
    "BaseRepository",
    "SqlTableRepository",
]
