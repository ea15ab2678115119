"""
Studianta - Exam Repository
Generic record gateway over the exam tables.

Callers own the transaction: writes are flushed, never committed here.
"""
import logging
import uuid
from typing import Any, Iterable, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studianta.core.database import Base
from studianta.core.errors import PersistenceFailure

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class ExamRepository:
    """insert/select/update/delete per entity model, wrapping driver errors."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _failure(self, action: str, model: Type[Base], error: SQLAlchemyError) -> PersistenceFailure:
        logger.error("%s on %s failed: %s", action, model.__tablename__, error)
        return PersistenceFailure(detail=f"{action} {model.__tablename__}: {error}")

    async def insert_one(self, model: Type[ModelT], **fields: Any) -> ModelT:
        """Insert a row and return it with its id."""
        record = model(**fields)
        try:
            self.db.add(record)
            await self.db.flush()
        except SQLAlchemyError as e:
            raise self._failure("insert", model, e) from e
        return record

    async def insert_many(self, model: Type[ModelT], rows: Iterable[dict]) -> list[ModelT]:
        """Insert several rows in one flush."""
        records = [model(**row) for row in rows]
        try:
            self.db.add_all(records)
            await self.db.flush()
        except SQLAlchemyError as e:
            raise self._failure("insert", model, e) from e
        return records

    async def get_by_id(self, model: Type[ModelT], record_id: uuid.UUID) -> Optional[ModelT]:
        try:
            return await self.db.get(model, record_id)
        except SQLAlchemyError as e:
            raise self._failure("select", model, e) from e

    async def select_by_filter(
        self,
        model: Type[ModelT],
        order_by: Optional[Sequence[Any]] = None,
        **filters: Any,
    ) -> list[ModelT]:
        """Rows matching equality filters, in the given order."""
        query = select(model).filter_by(**filters)
        if order_by is not None:
            query = query.order_by(*order_by)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise self._failure("select", model, e) from e
        return list(result.scalars().all())

    async def update_by_id(self, model: Type[ModelT], record_id: uuid.UUID, **fields: Any) -> ModelT:
        """
        Raises:
            PersistenceFailure: the row does not exist or the write fails
        """
        record = await self.get_by_id(model, record_id)
        if record is None:
            raise PersistenceFailure(detail=f"update {model.__tablename__}: {record_id} not found")

        for key, value in fields.items():
            setattr(record, key, value)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise self._failure("update", model, e) from e
        return record

    async def delete_by_filter(self, model: Type[ModelT], **filters: Any) -> int:
        """Delete matching rows, returning how many were removed."""
        try:
            result = await self.db.execute(delete(model).filter_by(**filters))
        except SQLAlchemyError as e:
            raise self._failure("delete", model, e) from e
        return result.rowcount or 0
