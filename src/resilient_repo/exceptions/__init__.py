# resilient_repo/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py          # Repository-level errors (NotFoundError, RepositoryTimeoutError, ...)
# │   └── classifier.py    # Driver-level errors -> StoreFault (category + code)

from .base import (
    RepositoryError,
    NotFoundError,
    RepositoryConnectionError,
    RepositoryTimeoutError,
    RetriesExhaustedError,
    OperationCancelledError,
)
from .classifier import (
    DEFAULT_CONCURRENCY_CODES,
    FaultCategory,
    StoreFault,
    StoreFaultError,
    classify_store_error,
)

__all__ = [
    "RepositoryError",
    "NotFoundError",
    "RepositoryConnectionError",
    "RepositoryTimeoutError",
    "RetriesExhaustedError",
    "OperationCancelledError",
    "DEFAULT_CONCURRENCY_CODES",
    "FaultCategory",
    "StoreFault",
    "StoreFaultError",
    "classify_store_error",
]
