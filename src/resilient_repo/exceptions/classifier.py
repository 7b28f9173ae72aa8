"""
Classification of store (driver) errors.

Repositories never wrap driver errors: a `sqlalchemy.exc.DBAPIError` reaches the
caller exactly as the driver raised it. What the retry policy needs is a small,
structured description of that error so it can decide whether to retry and how
long to wait. That description is a `StoreFault`:

    fault = classify_store_error(exc, concurrency_codes={51000, 1205})
    match fault:
        case StoreFault(category=FaultCategory.CONCURRENCY): ...   # retry, long backoff
        case StoreFault(category=FaultCategory.DEADLOCK): ...      # retry, short backoff
        case StoreFault(): ...                                     # store error, no retry
        case None: ...                                             # not from the store

Error codes are read from whatever the driver exposes:

| Driver                        | Where the code lives                     |
| ----------------------------- | ---------------------------------------- |
| pymssql / MySQL drivers       | first positional arg (int)               |
| pyodbc / aioodbc (SQL Server) | trailing "(1205)" in the message arg     |
| psycopg / asyncpg adapter     | `sqlstate` attribute (e.g. "40P01")      |
| psycopg2                      | `pgcode` attribute                       |
| anything else                 | `number` attribute when present          |
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

DEADLOCK_INDICATOR = "deadlock"

# SQL Server: 1205 deadlock victim, 51000 raised by optimistic-concurrency procedures.
# PostgreSQL: 40001 serialization_failure, 40P01 deadlock_detected.
DEFAULT_CONCURRENCY_CODES: frozenset[int | str] = frozenset({51000, 1205, "40001", "40P01"})

_TRAILING_NUMBER = re.compile(r"\((?P<code>\d{3,6})\)\s*(\(SQLExecDirectW\))?\s*$")


class FaultCategory(str, Enum):
    CONCURRENCY = "concurrency"
    DEADLOCK = "deadlock"
    OTHER = "other"


@dataclass(frozen=True)
class StoreFault:
    """Structured description of a store error."""

    category: FaultCategory
    code: int | str | None
    message: str

    @property
    def retryable(self) -> bool:
        return self.category is not FaultCategory.OTHER


def _normalize(code: int | str | None) -> str | None:
    if code is None:
        return None
    return str(code).strip().upper()


def extract_error_code(orig: object) -> int | str | None:
    """
    Best-effort extraction of the driver error code from the raw DBAPI exception.
    """
    if orig is None:
        return None

    for attr in ("number", "sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return value

    args = getattr(orig, "args", None) or ()
    if args and isinstance(args[0], int):
        return args[0]

    # pyodbc: Error(sqlstate, message); the native code trails the message argument
    texts = [arg for arg in reversed(args) if isinstance(arg, str)] or [str(orig)]
    for text in texts:
        m = _TRAILING_NUMBER.search(text)
        if m:
            return int(m.group("code"))

    return None


def classify_store_error(
    exc: BaseException,
    concurrency_codes: Iterable[int | str] = DEFAULT_CONCURRENCY_CODES,
    deadlock_indicator: str = DEADLOCK_INDICATOR,
) -> StoreFault | None:
    """
    Classify an exception raised while talking to the store.

    Returns:
        A StoreFault when the exception originates from the store driver, otherwise None.
    """
    if isinstance(exc, DBAPIError):
        orig = exc.orig if exc.orig is not None else exc
    elif isinstance(exc, StoreFaultError):
        return exc.fault
    else:
        return None

    code = extract_error_code(orig)
    message = str(orig)
    codes = {_normalize(c) for c in concurrency_codes}

    if code is not None and _normalize(code) in codes:
        category = FaultCategory.CONCURRENCY
    elif deadlock_indicator and deadlock_indicator in message.lower():
        category = FaultCategory.DEADLOCK
    else:
        category = FaultCategory.OTHER

    logger.debug(
        "store.fault.classified",
        extra={"category": category.value, "code": code, "error_type": type(orig).__name__},
    )
    return StoreFault(category=category, code=code, message=message)


class StoreFaultError(Exception):
    """
    An exception carrying a pre-classified StoreFault.

    Useful for store adapters that are not DBAPI based and want to take part in
    the retry policy without pretending to be a SQLAlchemy error.
    """

    def __init__(self, fault: StoreFault):
        super().__init__(fault.message)
        self.fault = fault


__all__ = [
    "DEADLOCK_INDICATOR",
    "DEFAULT_CONCURRENCY_CODES",
    "FaultCategory",
    "StoreFault",
    "StoreFaultError",
    "extract_error_code",
    "classify_store_error",
]
