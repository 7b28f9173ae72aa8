"""
Generic, resilient repository layer for relational stores.

    from resilient_repo import SqlAlchemyConnectionFactory, SqlTableRepository

    factory = SqlAlchemyConnectionFactory.from_settings(get_settings())
    repo = SqlTableRepository(Booking, bookings_table, factory)
    booking = await repo.find_by_id(booking_id)
"""

from resilient_repo.database.connection import ConnectionFactory, SqlAlchemyConnectionFactory
from resilient_repo.models.entity import Entity, IntervalEntity
from resilient_repo.repositories import BaseRepository, SqlTableRepository

__all__ = [
    "ConnectionFactory",
    "SqlAlchemyConnectionFactory",
    "Entity",
    "IntervalEntity",
    "BaseRepository",
    "SqlTableRepository",
]
