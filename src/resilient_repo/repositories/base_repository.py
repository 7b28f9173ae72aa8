"""
Base repository class providing common store operations.

A repository is bound to one entity class and one table for its whole life. Every
operation checks a connection out of the injected ConnectionFactory, runs a single
statement and releases the connection again; nothing is held between calls and no
transaction spans more than one statement.

Two execution paths exist:

  - Base CRUD (find/delete/exists) runs the statement directly.
  - `execute_with_retry_policy()` runs an action under the class-wide timeout + retry
    policy and verifies the outcome. Subclasses opt in for their own statements
    (`save`, custom queries). Setting `retry_base_operations = True` on a subclass
    routes the base CRUD statements through the same policy.

Subclasses provide the store-specific parts: `save`, `query`, `find_all_filtered`
and `delete_where`.
"""
import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Iterable, Mapping, Sequence, TypeVar

from sqlalchemy import Uuid, column, delete, func, literal_column, select, table
from sqlalchemy.sql.expression import TableClause

from resilient_repo.config.settings import get_settings
from resilient_repo.database.connection import ConnectionFactory
from resilient_repo.exceptions.base import NotFoundError
from resilient_repo.exceptions.classifier import DEADLOCK_INDICATOR, DEFAULT_CONCURRENCY_CODES
from resilient_repo.models.entity import Entity, project_effective_interval
from resilient_repo.resilience.policy import RetryPolicy, build_retry_policy, get_or_build_policy
from resilient_repo.resilience.verifier import verify_policy_result

# Type variable for the entity class
EntityType = TypeVar("EntityType", bound=Entity)
ResultType = TypeVar("ResultType")

ID_COLUMN = "Id"


def _coerce_uuid(value: Any) -> Any:
    """
    Normalise an Id value read back from the store.

    Stores without a native UUID type return the key as 32/36 character text or as
    16 raw bytes.
    """
    if value is None or isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(str(value))


def _make_table(table_name: str) -> TableClause:
    # "schema.table" is split so the schema is quoted separately
    schema, _, name = table_name.rpartition(".")
    return table(name, column(ID_COLUMN, Uuid()), schema=schema or None)


class BaseRepository(ABC, Generic[EntityType]):
    """
    Generic base repository providing common CRUD operations.

    Type Parameters:
        EntityType: The Entity subclass this repository manages.

    Class attributes (override in subclasses):
        max_retry_count: Retry ceiling; None falls back to settings.REPO_MAX_RETRY_COUNT.
        retry_concurrency_codes: Store error codes treated as concurrency conflicts.
        deadlock_indicator: Message substring that marks a deadlock.
        default_timeout_seconds: Outer timeout; None falls back to settings.REPO_TIMEOUT_SECONDS.
        retry_base_operations: Route base CRUD statements through the retry policy.
    """

    max_retry_count: int | None = None
    retry_concurrency_codes: frozenset[int | str] = DEFAULT_CONCURRENCY_CODES
    deadlock_indicator: str = DEADLOCK_INDICATOR
    default_timeout_seconds: float | None = None
    retry_base_operations: bool = False

    def __init__(
        self,
        model: type[EntityType],
        connection_factory: ConnectionFactory,
        logger: logging.Logger | None = None,
        table_name: str | None = None,
    ):
        """
        Initialize the repository.

        Args:
            model: The entity class (not an instance), e.g. Booking, not Booking().
            connection_factory: Factory used to open one connection per operation. Held by
                reference; the repository never disposes it.
            logger: Logger for operation and retry entries. Defaults to this module's logger.
            table_name: Backing table. Defaults to the entity class name. "schema.table" is accepted.
        """
        self.model = model
        self._connection_factory = connection_factory
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._table_name = table_name or model.__name__
        self._table = _make_table(self._table_name)

    # =================================================================================================================
    # Properties
    # =================================================================================================================

    @property
    def connection_factory(self) -> ConnectionFactory:
        return self._connection_factory

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def table_name(self) -> str:
        """The name of the table associated with this repository (immutable)."""
        return self._table_name

    @property
    def calling_type_name(self) -> str:
        return type(self).__name__

    @property
    def retry_policy(self) -> RetryPolicy:
        """The timeout + retry policy shared by every instance of this repository class."""
        return get_or_build_policy(type(self), self.build_retry_policy)

    # =================================================================================================================
    # Abstract, store-specific operations
    # =================================================================================================================

    @abstractmethod
    async def save(self, entity: EntityType) -> EntityType:
        """
        Persist the entity (insert or update) and return it with any store-generated
        fields populated.
        """

    @abstractmethod
    async def query(self) -> list[EntityType]:
        """Return the entities of the table."""

    @abstractmethod
    async def find_all_filtered(self, predicate: Any) -> list[EntityType]:
        """Return every entity matching `predicate` (store-specific filter)."""

    @abstractmethod
    async def delete_where(self, predicate: Any) -> None:
        """Delete every entity matching `predicate` (store-specific filter)."""

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def find_by_id(self, entity_id: uuid.UUID) -> EntityType:
        """
        Get an entity by its Id or raise NotFoundError.

        Raises:
            NotFoundError: If no row with that Id exists.
        """
        entity = await self.try_find_by_id(entity_id)

        if entity is None:
            raise NotFoundError(
                f"{self.model.__name__} with Id {entity_id} not found", fields=[ID_COLUMN])

        return entity

    async def try_find_by_id(self, entity_id: uuid.UUID) -> EntityType | None:
        """
        Get an entity by its Id.

        The row is read with every column of the table. When the table carries the
        EffectiveInterval_StartDate / EffectiveInterval_EndDate columns the derived
        EffectiveInterval value ("YYYY-MM-DD,YYYY-MM-DD", empty bound for null) is added.

        Returns:
            The entity if found, otherwise None.
        """
        stmt = (
            select(literal_column("*"))
            .select_from(self._table)
            .where(self._table.c[ID_COLUMN] == entity_id)
            .limit(1)
        )

        async def _fetch() -> Mapping[str, Any] | None:
            async with self._connection_factory.connection() as conn:
                result = await conn.execute(stmt)
                return result.mappings().first()

        row = await self._run(_fetch)

        self._logger.debug(
            "repo.find_by_id.done",
            extra={"table": self._table_name, "id": str(entity_id), "found": row is not None},
        )

        if row is None:
            return None
        return self.to_entity(row)

    async def find_by_ids(self, ids: Iterable[uuid.UUID]) -> list[EntityType]:
        """
        Get entities by Id, one round trip per Id, in the given order.

        Raises:
            NotFoundError: On the first Id that does not exist (no partial result).
        """
        results = []
        for entity_id in ids:
            results.append(await self.find_by_id(entity_id))
        return results

    async def exists(self, entity_id: uuid.UUID) -> bool:
        """
        Check whether a row with this Id exists (COUNT(Id) > 0).
        """
        stmt = select(func.count(self._table.c[ID_COLUMN])).where(self._table.c[ID_COLUMN] == entity_id)

        async def _count() -> int:
            async with self._connection_factory.connection() as conn:
                return await conn.scalar(stmt) or 0

        count = await self._run(_count)

        self._logger.debug(
            "repo.exists.done",
            extra={"table": self._table_name, "id": str(entity_id), "count": count},
        )
        return count > 0

    def exists_blocking(self, entity_id: uuid.UUID) -> bool:
        """
        Blocking variant of `exists()` for code that is not running an event loop.

        Raises:
            RuntimeError: If called from inside a running event loop.
        """
        return asyncio.run(self.exists(entity_id))

    # =================================================================================================================
    # Write Operations
    # =================================================================================================================

    async def save_all(self, entities: Sequence[EntityType]) -> list[EntityType]:
        """
        Save entities one by one, in order. Not atomic: if the Kth save fails, the
        entities before it stay saved, the ones after it are never attempted, and the
        error propagates.
        """
        results = []
        for entity in entities:
            results.append(await self.save(entity))
        return results

    async def delete(self, target: EntityType | uuid.UUID) -> None:
        """
        Delete an entity, given either the entity or its Id.

        Deleting an Id that does not exist is a no-op.
        """
        entity_id = target.id if isinstance(target, Entity) else target
        stmt = delete(self._table).where(self._table.c[ID_COLUMN] == entity_id)
        start = time.perf_counter()

        async def _delete() -> int:
            async with self._connection_factory.connection() as conn:
                result = await conn.execute(stmt)
                return result.rowcount

        rowcount = await self._run(_delete)

        self._logger.info(
            "repo.delete.success",
            extra={
                "table": self._table_name,
                "id": str(entity_id),
                "rowcount": rowcount,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )

    async def delete_many(self, entities: Iterable[EntityType]) -> None:
        """
        Delete entities one by one. Not atomic; same failure semantics as save_all().
        """
        for entity in entities:
            await self.delete(entity.id)

    # =================================================================================================================
    # Resilience
    # =================================================================================================================

    def build_retry_policy(self) -> RetryPolicy:
        """
        Build the timeout + retry policy for this repository class.

        Called once per class (the result is cached process-wide); override to tune
        the policy, e.g. to inject a different sleep function.
        """
        settings = get_settings()
        return build_retry_policy(
            self.calling_type_name,
            max_retry_count=self.max_retry_count or settings.REPO_MAX_RETRY_COUNT,
            concurrency_codes=self.retry_concurrency_codes,
            deadlock_indicator=self.deadlock_indicator,
            timeout_seconds=self.default_timeout_seconds or settings.REPO_TIMEOUT_SECONDS,
            logger=self._logger,
        )

    async def execute_with_retry_policy(
        self,
        action: Callable[[], Awaitable[ResultType]],
        timeout_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ResultType:
        """
        Execute `action` under the class-wide retry policy wrapped in a timeout.

        Args:
            action: Zero-argument coroutine factory, invoked once per attempt. It should
                acquire its own connection (e.g. `async with self.connection_factory.connection()`).
            timeout_seconds: Max time for all attempts and waits together; defaults to
                the policy timeout (60s unless configured).
            cancel_event: Setting this event aborts the call with OperationCancelledError.

        Raises:
            RepositoryTimeoutError: If the timeout elapsed first.
            RetriesExhaustedError: If a retryable error persisted up to the retry ceiling.
            OperationCancelledError: If `cancel_event` was set.
            sqlalchemy.exc.DBAPIError: Store errors that are not retried, unchanged.
        """
        policy_result = await self.retry_policy.execute(
            action, timeout_seconds=timeout_seconds, cancel_event=cancel_event, log=self._logger
        )
        return verify_policy_result(policy_result, self.calling_type_name)

    async def _run(self, action: Callable[[], Awaitable[ResultType]]) -> ResultType:
        if self.retry_base_operations:
            return await self.execute_with_retry_policy(action)
        return await action()

    # =================================================================================================================
    # Row mapping
    # =================================================================================================================

    def to_entity(self, row: Mapping[str, Any]) -> EntityType:
        """Map a result row (column name -> value) onto the entity class."""
        data = dict(row)
        if ID_COLUMN in data:
            data[ID_COLUMN] = _coerce_uuid(data[ID_COLUMN])
        return self.model.model_validate(project_effective_interval(data))
