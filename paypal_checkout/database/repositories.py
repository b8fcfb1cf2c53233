"""
Keyed CRUD repositories for orders, payments and audit log rows.

Every operation accepts an optional ``session``. When it is supplied the
operation joins the caller's transaction and does not commit; when it is
omitted the repository opens its own session and commits immediately.
"""
from collections.abc import Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Literal, Optional, Type, TypeVar

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paypal_checkout.database.models import Base, Log, Order, Payment
from paypal_checkout.enums import RequestType

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)
T = TypeVar("T")


class RepositoryError(Exception):
    """Base exception for persistence errors."""

    pass


class DuplicateKeyError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class RecordNotFoundError(RepositoryError):
    """Raised when a keyed record does not exist."""

    pass


class CrudRepository(Generic[ModelT]):
    """
    Generic keyed CRUD over one table.

    Conditions are equality filters given as ``{column_name: value}``.
    Updates go through ORM attributes so model validators apply.
    """

    model: Type[ModelT]

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository.

        Args:
            session_factory: Factory for sessions opened when no session is given
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self, session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return
        async with self.session_factory() as own:
            try:
                yield own
                await own.commit()
            except Exception:
                await own.rollback()
                raise

    async def _flush(self, session: AsyncSession) -> None:
        try:
            await session.flush()
        except IntegrityError as e:
            logger.warning(
                "repository_integrity_error",
                table=self.model.__tablename__,
                error=str(e.orig),
            )
            raise DuplicateKeyError(
                f"Duplicate key in {self.model.__tablename__}: {e.orig}", original_error=e
            ) from e

    def _where(self, conditions: Optional[Mapping[str, Any]]) -> list[Any]:
        clauses = []
        for name, value in (conditions or {}).items():
            column = getattr(self.model, name)
            if isinstance(value, (list, tuple, set)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    async def create_one(self, dto: ModelT, session: Optional[AsyncSession] = None) -> Any:
        """
        Insert a record.

        Returns:
            The primary key of the new record

        Raises:
            DuplicateKeyError: If a unique constraint is violated
        """
        async with self._session(session) as db:
            db.add(dto)
            await self._flush(db)
            return dto.id  # type: ignore[attr-defined]

    async def read_one(self, key: Any, session: Optional[AsyncSession] = None) -> Optional[ModelT]:
        """Read a record by primary key, or None."""
        async with self._session(session) as db:
            return await db.get(self.model, key)

    async def read_many(
        self,
        conditions: Optional[Mapping[str, Any]] = None,
        sorting: Optional[Mapping[str, Literal["asc", "desc"]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        session: Optional[AsyncSession] = None,
    ) -> list[ModelT]:
        """Read records matching equality conditions."""
        stmt = select(self.model).where(*self._where(conditions))
        for name, direction in (sorting or {}).items():
            column = getattr(self.model, name)
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        async with self._session(session) as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def update_one(
        self, key: Any, updates: Mapping[str, Any], session: Optional[AsyncSession] = None
    ) -> int:
        """
        Update a record by primary key.

        Returns:
            int: Number of updated records (0 or 1)
        """
        async with self._session(session) as db:
            record = await db.get(self.model, key)
            if record is None:
                return 0
            for name, value in updates.items():
                setattr(record, name, value)
            await self._flush(db)
            return 1

    async def update_many(
        self,
        conditions: Mapping[str, Any],
        updates: Mapping[str, Any],
        session: Optional[AsyncSession] = None,
    ) -> int:
        """Update every record matching the conditions; returns the count."""
        async with self._session(session) as db:
            records = await self.read_many(conditions, session=db)
            for record in records:
                for name, value in updates.items():
                    setattr(record, name, value)
            await self._flush(db)
            return len(records)

    async def delete_one(self, key: Any, session: Optional[AsyncSession] = None) -> int:
        """Delete a record by primary key; returns the count."""
        async with self._session(session) as db:
            record = await db.get(self.model, key)
            if record is None:
                return 0
            await db.delete(record)
            await self._flush(db)
            return 1

    async def delete_many(
        self, conditions: Mapping[str, Any], session: Optional[AsyncSession] = None
    ) -> int:
        """Delete every record matching the conditions; returns the count."""
        stmt = delete(self.model).where(*self._where(conditions))
        async with self._session(session) as db:
            result = await db.execute(stmt)
            return result.rowcount or 0


class OrderRepository(CrudRepository[Order]):
    """Orders keyed by internal ID, unique on the PayPal order ID."""

    model = Order

    async def read_by_paypal_order_id(
        self, paypal_order_id: str, session: Optional[AsyncSession] = None
    ) -> Optional[Order]:
        """Look up an order by the ID PayPal assigned to it."""
        records = await self.read_many({"paypal_order_id": paypal_order_id}, session=session)
        return records[0] if records else None


class PaymentRepository(CrudRepository[Payment]):
    """Captured payments."""

    model = Payment

    async def read_for_order(
        self, order_ref: int, session: Optional[AsyncSession] = None
    ) -> list[Payment]:
        """All payments linked to an order, oldest first."""
        return await self.read_many(
            {"order_ref": order_ref}, sorting={"id": "asc"}, session=session
        )


class LogRepository(CrudRepository[Log]):
    """PayPal API audit log rows."""

    model = Log

    async def read_in_flight(
        self,
        request_type: Optional[RequestType] = None,
        session: Optional[AsyncSession] = None,
    ) -> list[Log]:
        """Rows whose call outcome has not been recorded."""
        conditions: dict[str, Any] = {"date_response": None}
        if request_type is not None:
            conditions["request_type"] = RequestType.parse(request_type).value
        return await self.read_many(conditions, sorting={"id": "asc"}, session=session)


class TransactionWrapper:
    """
    Runs a unit of work inside one database transaction.

    ``execute(None, fn)`` opens a session, commits when ``fn`` returns and
    rolls back when it raises. ``execute(session, fn)`` joins the caller's
    transaction and leaves commit/rollback to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def execute(
        self,
        session: Optional[AsyncSession],
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run ``fn`` with a transaction handle.

        Args:
            session: Outer transaction to join, or None for a new one
            fn: Coroutine function receiving the session

        Returns:
            Whatever ``fn`` returns
        """
        if session is not None:
            return await fn(session)

        async with self.session_factory() as own:
            try:
                result = await fn(own)
                await own.commit()
                return result
            except IntegrityError as e:
                await own.rollback()
                raise DuplicateKeyError(f"Duplicate key on commit: {e.orig}", original_error=e) from e
            except Exception:
                await own.rollback()
                raise

