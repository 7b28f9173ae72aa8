from .base import metadata
from .connection import ConnectionFactory, SqlAlchemyConnectionFactory
from .session import create_engine_from_settings

__all__ = [
    "metadata",
    "ConnectionFactory",
    "SqlAlchemyConnectionFactory",
    "create_engine_from_settings",
]
