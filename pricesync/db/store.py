"""Generic keyed-record store over the SQLAlchemy models.

The sync core only needs select / insert / update / delete with simple
filtering, so every operation here runs in its own session and commits a
single row. Nothing spans multiple rows transactionally.
"""

import logging
from typing import Any, Iterable, Optional, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricesync.db.models import Base
from pricesync.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class RecordStore:
    """Keyed-record operations for any model with an ``id`` primary key."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        if session_factory is None:
            from pricesync.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    async def select(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Optional[Iterable[Any]] = None,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        """
        Select rows of ``model`` matching all criteria.

        Args:
            model: Model class
            *criteria: SQLAlchemy column expressions, e.g.
                ``Product.supplier_id.in_(ids)``, ``Product.marketplace_id.is_not(None)``
            order_by: Optional ordering expressions
            limit: Optional row limit
        """
        query = select(model).where(*criteria)
        if order_by is not None:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"select {model.__tablename__} failed: {e}") from e

    async def first(self, model: type[ModelT], *criteria: Any) -> Optional[ModelT]:
        rows = await self.select(model, *criteria, limit=1)
        return rows[0] if rows else None

    async def get(self, model: type[ModelT], record_id: Any) -> ModelT:
        """Fetch one row by id. Raises NotFoundError if absent."""
        try:
            async with self._session_factory() as db:
                row = await db.get(model, record_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"get {model.__tablename__} failed: {e}") from e
        if row is None:
            raise NotFoundError(model.__tablename__, str(record_id))
        return row

    async def insert(self, model: type[ModelT], values: dict) -> ModelT:
        """Insert one row and return it with defaults populated."""
        _check_columns(model, values)
        row = model(**values)
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"insert into {model.__tablename__} failed: {e}") from e
        return row

    async def update(self, model: type[ModelT], record_id: Any, patch: dict) -> ModelT:
        """Apply ``patch`` to one row and return the updated row."""
        _check_columns(model, patch)
        try:
            async with self._session_factory() as db:
                row = await db.get(model, record_id)
                if row is None:
                    raise NotFoundError(model.__tablename__, str(record_id))
                for key, value in patch.items():
                    setattr(row, key, value)
                await db.commit()
                await db.refresh(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"update {model.__tablename__} {record_id} failed: {e}") from e
        return row

    async def delete(self, model: type[ModelT], record_id: Any) -> None:
        """Delete one row. Dependent rows follow the foreign key rules."""
        try:
            async with self._session_factory() as db:
                row = await db.get(model, record_id)
                if row is None:
                    raise NotFoundError(model.__tablename__, str(record_id))
                await db.delete(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"delete {model.__tablename__} {record_id} failed: {e}") from e


def _check_columns(model: type[Base], values: dict) -> None:
    columns: Sequence[str] = model.__table__.columns.keys()
    unknown = sorted(set(values) - set(columns))
    if unknown:
        raise ValidationError(f"unknown {model.__tablename__} fields: {', '.join(unknown)}")
