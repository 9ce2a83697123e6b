import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Iterable, Optional, TypeVar, Union
from uuid import UUID

from sqlalchemy import Select, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql.elements import ColumnElement

from app.core.database.base import Base
from shared.abstracts.query_spec import Ordering, QuerySpec, QueryTransform, apply_ordering
from shared.abstracts.transaction import TransactionContext, current_transaction, transaction_scope

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


class GenericRepository(Generic[T]):
    """
    Generic async repository over one mapped model.

    Concrete repositories only bind the model:

        class ProductRepository(GenericRepository[Product]):
            model = Product

    Reads are untracked by default (instances come back detached from the
    session). Pass ``as_no_tracking=False`` when the result will be mutated
    and saved. Every write flushes immediately through ``save_changes``.

    One repository (one session) serves one logical caller; it is not safe to
    share across concurrently running tasks.
    """

    model: type[T]

    def __init__(self, db: AsyncSession, model: Optional[type[T]] = None):
        if db is None:
            raise ValueError("db session is required")
        self.db = db
        if model is not None:
            self.model = model
        if getattr(self, "model", None) is None:
            raise ValueError(f"{type(self).__name__} has no model bound")
        self._disposed = False

    # ---------- Reads ----------

    async def query(
        self,
        spec: Union[QuerySpec, QueryTransform],
        *,
        as_no_tracking: bool = True,
    ) -> list[T]:
        """Compose ``spec`` onto ``select(model)`` and materialize the rows."""
        if spec is None:
            raise ValueError("spec is required")
        base = select(self.model)
        stmt = spec.apply(base) if isinstance(spec, QuerySpec) else spec(base)
        return await self._fetch(stmt, as_no_tracking)

    async def find(self, predicate: ColumnElement[bool], *, as_no_tracking: bool = True) -> list[T]:
        if predicate is None:
            raise ValueError("predicate is required")
        return await self._fetch(select(self.model).where(predicate), as_no_tracking)

    async def find_by_id(self, entity_id: UUID) -> Optional[T]:
        # Identity-map lookup: an instance already tracked by this session is
        # returned as-is without a round trip, whatever tracking other reads use.
        return await self.db.get(self.model, entity_id)

    async def find_all(self, *, as_no_tracking: bool = True) -> list[T]:
        """Every row of the table. No limit is applied; avoid on large tables."""
        return await self._fetch(select(self.model), as_no_tracking)

    async def exists(self, predicate: ColumnElement[bool]) -> bool:
        if predicate is None:
            raise ValueError("predicate is required")
        stmt = select(select(self.model).where(predicate).exists())
        return bool(await self.db.scalar(stmt))

    async def count(self, predicate: Optional[ColumnElement[bool]] = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        if predicate is not None:
            stmt = stmt.where(predicate)
        return int(await self.db.scalar(stmt) or 0)

    async def find_paged(
        self,
        page: int,
        page_size: int,
        predicate: Optional[ColumnElement[bool]] = None,
        order_by: Optional[Ordering] = None,
        *,
        as_no_tracking: bool = True,
    ) -> tuple[list[T], int]:
        """
        Return one page of rows and the total number of rows matching
        ``predicate``.

        ``page`` is 1-based. Two statements are issued: a count over the
        filtered set, then the page itself. Without ``order_by`` the database
        is free to return rows in any order, so pages may overlap or skip rows.
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")

        total = await self.count(predicate)

        stmt = select(self.model)
        if predicate is not None:
            stmt = stmt.where(predicate)
        if order_by is None:
            logger.warning("paging %s without ordering; page contents are unstable", self.model.__name__)
        stmt = apply_ordering(stmt, order_by)
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)

        items = await self._fetch(stmt, as_no_tracking)
        return items, total

    # ---------- Writes ----------

    async def add(self, entity: T) -> None:
        if entity is None:
            raise ValueError("entity is required")
        self.db.add(entity)
        await self.save_changes()

    async def add_range(self, entities: Iterable[T]) -> None:
        items = self._require_items(entities)
        self.db.add_all(items)
        await self.save_changes()

    async def update(self, entity: T) -> None:
        """Persist every column of ``entity``, changed or not."""
        if entity is None:
            raise ValueError("entity is required")
        await self._mark_modified(entity)
        await self.save_changes()

    async def update_range(self, entities: Iterable[T]) -> None:
        """
        Persist every entity of ``entities``. If one of them no longer exists,
        none of the range is left staged on the session.
        """
        items = self._require_items(entities)
        staged: list[T] = []
        try:
            # merge() autoflushes; keep earlier items staged until all exist
            with self.db.no_autoflush:
                for entity in items:
                    staged.append(await self._mark_modified(entity))
        except BaseException:
            await self._discard_staged(staged)
            raise
        await self.save_changes()

    async def delete(self, entity: T) -> None:
        if entity is None:
            raise ValueError("entity is required")
        target = entity if entity in self.db else await self._attach_existing(entity)
        await self.db.delete(target)
        await self.save_changes()

    async def save_changes(self) -> int:
        """
        Send staged inserts/updates/deletes to the database and return how
        many entities were affected.

        Outside an explicit transaction this commits. Inside one it only
        flushes; the transaction owner decides commit or rollback.
        """
        affected = len(self.db.new) + len(self.db.dirty) + len(self.db.deleted)
        if current_transaction(self.db) is not None:
            await self.db.flush()
            logger.debug("flushed %d %s change(s) inside transaction", affected, self.model.__name__)
            return affected
        try:
            await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise
        logger.debug("committed %d %s change(s)", affected, self.model.__name__)
        return affected

    # ---------- Transactions ----------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TransactionContext]:
        async with transaction_scope(self.db) as ctx:
            yield ctx

    async def execute_in_transaction(self, action: Callable[[], Awaitable[Any]]) -> None:
        """
        Run ``action`` inside a transaction.

        Nested calls on the same session join the outer transaction instead of
        opening a new one, so the outermost call alone commits or rolls back.
        """
        if action is None:
            raise ValueError("action is required")
        async with self.transaction():
            await action()

    def has_active_transaction(self) -> bool:
        return current_transaction(self.db) is not None

    # ---------- Lifetime ----------

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await self.db.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # ---------- Internal helpers ----------

    async def _fetch(self, stmt: Select, as_no_tracking: bool) -> list[T]:
        tracked_before = set(self.db.identity_map.keys()) if as_no_tracking else None
        res = await self.db.execute(stmt)
        rows = list(res.scalars().all())
        if as_no_tracking:
            for obj in rows:
                if obj in self.db and inspect(obj).identity_key not in tracked_before:
                    self.db.expunge(obj)
        return rows

    async def _attach_existing(self, entity: T) -> T:
        merged = await self.db.merge(entity)
        if merged in self.db.new:
            # merge() found no row and staged an insert instead
            self.db.expunge(merged)
            raise StaleDataError(
                f"{self.model.__name__} {self._pk_of(entity)} does not exist"
            )
        return merged

    async def _mark_modified(self, entity: T) -> T:
        merged = entity if entity in self.db else await self._attach_existing(entity)
        state = inspect(merged)
        if state.persistent and state.unloaded:
            # flag_modified needs a value present; rollbacks expire instances
            await self.db.refresh(merged, attribute_names=list(state.unloaded))
        for attr in inspect(self.model).column_attrs:
            if any(col.primary_key for col in attr.columns):
                continue
            flag_modified(merged, attr.key)
        return merged

    async def _discard_staged(self, staged: list[T]) -> None:
        if current_transaction(self.db) is None:
            await self.db.rollback()
            return
        # Inside a transaction: drop the pending changes but keep what was
        # already flushed, which belongs to the transaction owner.
        for obj in staged:
            if obj in self.db:
                self.db.expire(obj)

    def _pk_of(self, entity: T) -> tuple:
        return tuple(getattr(entity, col.key) for col in inspect(self.model).primary_key)

    @staticmethod
    def _require_items(entities: Optional[Iterable[T]]) -> list[T]:
        if entities is None:
            raise ValueError("entities are required")
        items = list(entities)
        if any(e is None for e in items):
            raise ValueError("entities must not contain None")
        return items
