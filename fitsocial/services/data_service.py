"""
Data Service

The backend's logical operations (query / insert / update / delete / subscribe /
upload_blob) over SQLAlchemy tables. Each call opens its own session so calls
issued concurrently never share one. Successful writes publish one ChangeEvent
per affected row after commit.
"""

from typing import Any, Iterable, Mapping, Optional, Sequence, Type

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitsocial.core.errors import (
    AppError,
    BackendUnavailableError,
    ConflictError,
    ValidationError,
)
from fitsocial.core.logging import get_logger
from fitsocial.infra.storage import LocalBlobStorage
from fitsocial.models import BlockedUser, Follow, Message, Profile
from fitsocial.models.base import Base
from fitsocial.realtime.feed import ChangeCallback, ChangeFeed, Subscription
from fitsocial.schemas.realtime import ChangeEvent, EventType

logger = get_logger(__name__)

Row = dict[str, Any]
Where = Mapping[str, Any]

TABLES: dict[str, Type[Base]] = {
    "profiles": Profile,
    "messages": Message,
    "follows": Follow,
    "blocked_users": BlockedUser,
}


class DataService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
        storage: Optional[LocalBlobStorage] = None,
    ):
        self.session_factory = session_factory
        self.feed = feed
        self.storage = storage or LocalBlobStorage()

    # Filters -------------------------------------------------------------
    @staticmethod
    def _model(table: str) -> Type[Base]:
        model = TABLES.get(table)
        if model is None:
            raise ValidationError(f"Unknown table: {table}")
        return model

    @staticmethod
    def _column(model: Type[Base], name: str):
        if name not in model.__table__.columns:
            raise ValidationError(f"Unknown column: {model.__tablename__}.{name}")
        return getattr(model, name)

    def _conditions(self, model: Type[Base], where: Optional[Where]) -> list:
        conditions = []
        for name, value in (where or {}).items():
            column = self._column(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        return conditions

    def _select(
        self,
        model: Type[Base],
        where: Optional[Where],
        any_of: Optional[Sequence[Where]],
    ):
        stmt = select(model)
        conditions = self._conditions(model, where)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        if any_of:
            stmt = stmt.where(or_(*(and_(*self._conditions(model, group)) for group in any_of)))
        return stmt

    # Operations ----------------------------------------------------------
    async def query(
        self,
        table: str,
        where: Optional[Where] = None,
        *,
        any_of: Optional[Sequence[Where]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        model = self._model(table)
        stmt = self._select(model, where, any_of)
        if order_by:
            column = self._column(model, order_by)
            tie_break = model.id
            if descending:
                stmt = stmt.order_by(column.desc(), tie_break.desc())
            else:
                stmt = stmt.order_by(column.asc(), tie_break.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [row.to_dict() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Query on {table} failed: {e}")
            raise BackendUnavailableError(f"Failed to read {table}") from e

    async def get(self, table: str, where: Where) -> Optional[Row]:
        rows = await self.query(table, where, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        model = self._model(table)
        for name in record:
            self._column(model, name)

        try:
            async with self.session_factory() as session:
                try:
                    instance = model(**record)
                except ValueError as e:
                    raise ValidationError(str(e)) from e
                session.add(instance)
                await session.commit()
                await session.refresh(instance)
                row = instance.to_dict()
        except IntegrityError as e:
            logger.info(f"Insert into {table} rejected: {e.orig}")
            raise ConflictError(f"Duplicate or invalid {table} record") from e
        except SQLAlchemyError as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise BackendUnavailableError(f"Failed to write {table}") from e

        await self._publish("insert", table, [(row, None)])
        return row

    async def update(
        self,
        table: str,
        where: Optional[Where],
        patch: Mapping[str, Any],
        *,
        any_of: Optional[Sequence[Where]] = None,
    ) -> list[Row]:
        model = self._model(table)
        for name in patch:
            self._column(model, name)
        if not where and not any_of:
            raise ValidationError("Refusing to update without a filter")

        changes: list[tuple[Row, Row]] = []
        try:
            async with self.session_factory() as session:
                result = await session.execute(self._select(model, where, any_of))
                instances = result.scalars().all()
                olds = [instance.to_dict() for instance in instances]
                for instance in instances:
                    for name, value in patch.items():
                        try:
                            setattr(instance, name, value)
                        except ValueError as e:
                            raise ValidationError(str(e)) from e
                await session.commit()
                for instance in instances:
                    await session.refresh(instance)
                changes = [(instance.to_dict(), old) for instance, old in zip(instances, olds)]
        except IntegrityError as e:
            raise ConflictError(f"Update of {table} violates a constraint") from e
        except SQLAlchemyError as e:
            logger.error(f"Update of {table} failed: {e}")
            raise BackendUnavailableError(f"Failed to write {table}") from e

        await self._publish("update", table, changes)
        return [row for row, _ in changes]

    async def delete(
        self,
        table: str,
        where: Optional[Where] = None,
        *,
        any_of: Optional[Sequence[Where]] = None,
    ) -> list[Row]:
        model = self._model(table)
        if not where and not any_of:
            raise ValidationError("Refusing to delete without a filter")

        try:
            async with self.session_factory() as session:
                result = await session.execute(self._select(model, where, any_of))
                instances = result.scalars().all()
                rows = [instance.to_dict() for instance in instances]
                for instance in instances:
                    await session.delete(instance)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Delete from {table} failed: {e}")
            raise BackendUnavailableError(f"Failed to delete from {table}") from e

        await self._publish("delete", table, [(row, row) for row in rows])
        return rows

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        where: Optional[Where] = None,
    ) -> Subscription:
        self._model(table)
        return self.feed.subscribe(table, callback, where)

    async def upload_blob(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        try:
            return await self.storage.upload(bucket, path, data)
        except AppError:
            raise
        except OSError as e:
            logger.error(f"Upload of {bucket}/{path} ({content_type}) failed: {e}")
            raise BackendUnavailableError("Failed to upload media") from e

    async def _publish(
        self,
        event_type: EventType,
        table: str,
        changes: Iterable[tuple[Row, Optional[Row]]],
    ) -> None:
        for row, old in changes:
            await self.feed.publish(
                ChangeEvent(event_type=event_type, table=table, row=row, old=old)
            )
