"""
Shared SQLAlchemy MetaData for tables backing repositories.

Declare `Table` objects against this metadata (see `SqlTableRepository`) so that
constraint and index names follow one naming convention across stores.
"""

from sqlalchemy import MetaData

# Naming convention for constraints and indexes
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)
