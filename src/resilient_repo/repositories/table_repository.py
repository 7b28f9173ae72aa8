"""
Table-backed repository.

`SqlTableRepository` binds a BaseRepository to a SQLAlchemy Core `Table`, which gives
it typed columns for writes and filters. Entities are written by alias, so an
entity field aliased "EffectiveInterval_StartDate" lands in that column; fields
with no matching column (e.g. the derived EffectiveInterval) are skipped.
"""
import logging
import time
from typing import Any, Callable, Mapping, Union

from sqlalchemy import Table, delete, func, insert, literal_column, select, update
from sqlalchemy.sql.elements import ColumnElement

from resilient_repo.database.connection import ConnectionFactory

from .base_repository import ID_COLUMN, BaseRepository, EntityType

# A boolean clause, or a callable building one from the table
Predicate = Union[ColumnElement[bool], Callable[[Table], ColumnElement[bool]]]


class SqlTableRepository(BaseRepository[EntityType]):
    """
    Repository over one SQLAlchemy `Table` whose primary key column is "Id".

    `save` runs under the retry policy; the remaining statements follow the base
    class rule (direct, unless `retry_base_operations` is set).
    """

    def __init__(
        self,
        model: type[EntityType],
        table: Table,
        connection_factory: ConnectionFactory,
        logger: logging.Logger | None = None,
    ):
        if ID_COLUMN not in table.c:
            raise ValueError(f"Table {table.fullname!r} has no {ID_COLUMN!r} column")

        super().__init__(model, connection_factory, logger=logger, table_name=table.fullname)
        self._table = table

    @property
    def table(self) -> Table:
        return self._table

    # =================================================================================================================
    # Write Operations
    # =================================================================================================================

    async def save(self, entity: EntityType) -> EntityType:
        """
        Insert or update the entity (update first, insert when no row matched).

        Runs under the retry policy, so concurrency conflicts and deadlocks are
        retried with backoff.

        Returns:
            The entity as stored, re-read so store defaults are populated.
        """
        values = self._column_values(entity)
        entity_id = values.pop(ID_COLUMN)
        id_column = self._table.c[ID_COLUMN]
        start = time.perf_counter()

        async def _upsert() -> bool:
            async with self.connection_factory.connection() as conn:
                if values:
                    result = await conn.execute(
                        update(self._table).where(id_column == entity_id).values(values))
                    matched = result.rowcount
                else:
                    matched = await conn.scalar(
                        select(func.count(id_column)).where(id_column == entity_id))

                if matched:
                    return False

                await conn.execute(insert(self._table).values({ID_COLUMN: entity_id, **values}))
                return True

        inserted = await self.execute_with_retry_policy(_upsert)

        self.logger.info(
            "repo.save.success",
            extra={
                "table": self.table_name,
                "id": str(entity_id),
                "inserted": inserted,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return await self.find_by_id(entity_id)

    async def delete_where(self, predicate: Predicate) -> None:
        """Delete every row matching the predicate."""
        stmt = delete(self._table).where(self._resolve(predicate))

        async def _delete() -> int:
            async with self.connection_factory.connection() as conn:
                result = await conn.execute(stmt)
                return result.rowcount

        rowcount = await self._run(_delete)
        self.logger.info("repo.delete_where.success", extra={"table": self.table_name, "rowcount": rowcount})

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def query(self) -> list[EntityType]:
        """Return every row of the table as entities."""
        return await self._select_many(None)

    async def find_all_filtered(self, predicate: Predicate) -> list[EntityType]:
        """
        Return the entities matching the predicate.

        Example:
            await repo.find_all_filtered(lambda t: t.c.Status == "open")
        """
        return await self._select_many(self._resolve(predicate))

    async def count(self) -> int:
        """Return the number of rows in the table."""
        stmt = select(func.count()).select_from(self._table)

        async def _count() -> int:
            async with self.connection_factory.connection() as conn:
                return await conn.scalar(stmt) or 0

        return await self._run(_count)

    # =================================================================================================================
    # Helpers
    # =================================================================================================================

    async def _select_many(self, clause: ColumnElement[bool] | None) -> list[EntityType]:
        stmt = select(literal_column("*")).select_from(self._table)
        if clause is not None:
            stmt = stmt.where(clause)

        async def _fetch() -> list[Mapping[str, Any]]:
            async with self.connection_factory.connection() as conn:
                result = await conn.execute(stmt)
                return list(result.mappings().all())

        rows = await self._run(_fetch)
        self.logger.debug("repo.select.done", extra={"table": self.table_name, "count": len(rows)})
        return [self.to_entity(row) for row in rows]

    def _resolve(self, predicate: Predicate) -> ColumnElement[bool]:
        if callable(predicate) and not isinstance(predicate, ColumnElement):
            return predicate(self._table)
        return predicate

    def _column_values(self, entity: EntityType) -> dict[str, Any]:
        data = entity.model_dump(by_alias=True)
        return {key: value for key, value in data.items() if key in self._table.c}
