"""Tenant-scoped statement execution for RLS enforcement.

Every unit of work MUST:
1. Check out a pooled connection and open a transaction
2. Bind the tenant: SELECT set_config('app.current_tenant_id', :tenant_id, true)
3. Run its statements on that same connection

A pool hands connections out across tenants, so step 2 is repeated on
every call and never cached per connection. set_config(..., true) is
transaction-local, which keeps it compatible with PgBouncer transaction
pooling.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import Executable, Row, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from crm_service.errors import MissingTenantError, RepositoryError, TenantBindingError

TENANT_SETTING = "app.current_tenant_id"

T = TypeVar("T")


def current_tenant_setting():
    """SQL expression for the tenant bound to the running session."""
    return func.current_setting(TENANT_SETTING, True)


class TenantScopedStore:
    """Runs statements on pooled connections stamped with the caller's tenant."""

    def __init__(self, engine: AsyncEngine, logger: logging.Logger | None = None) -> None:
        self._engine = engine
        self._logger = logger or logging.getLogger(__name__)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def _bind_tenant(self, conn: AsyncConnection, tenant_id: str) -> None:
        try:
            await conn.execute(select(func.set_config(TENANT_SETTING, tenant_id, True)))
        except SQLAlchemyError as exc:
            self._logger.error("Tenant directive failed", extra={"tenant_id": tenant_id})
            raise TenantBindingError(exc) from exc

    @asynccontextmanager
    async def transaction(
        self, tenant_id: str, operation: str = "run transaction"
    ) -> AsyncIterator[AsyncConnection]:
        """Yield a connection bound to *tenant_id* inside one transaction.

        Commits on normal exit and rolls back on any exception. Unique
        violations surface as IntegrityError so callers can map them;
        other storage failures are wrapped in RepositoryError.
        """
        if not tenant_id:
            raise MissingTenantError()
        try:
            async with self._engine.begin() as conn:
                await self._bind_tenant(conn, tenant_id)
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            self._logger.error("Storage operation failed: %s", operation, exc_info=True)
            raise RepositoryError(operation, exc) from exc

    async def run_in_transaction(
        self,
        tenant_id: str,
        fn: Callable[[AsyncConnection], Awaitable[T]],
        operation: str = "run transaction",
    ) -> T:
        async with self.transaction(tenant_id, operation) as conn:
            return await fn(conn)

    async def execute(self, tenant_id: str, statement: Executable, operation: str = "execute statement") -> int:
        """Run a write statement and return the number of affected rows."""
        async with self.transaction(tenant_id, operation) as conn:
            result = await conn.execute(statement)
            return result.rowcount

    async def fetch_one(self, tenant_id: str, statement: Executable, operation: str = "fetch row") -> Row[Any] | None:
        async with self.transaction(tenant_id, operation) as conn:
            result = await conn.execute(statement)
            return result.first()

    async def fetch_all(self, tenant_id: str, statement: Executable, operation: str = "fetch rows") -> list[Row[Any]]:
        async with self.transaction(tenant_id, operation) as conn:
            result = await conn.execute(statement)
            return list(result.all())

    async def fetch_scalar(self, tenant_id: str, statement: Executable, operation: str = "fetch value") -> Any:
        async with self.transaction(tenant_id, operation) as conn:
            result = await conn.execute(statement)
            return result.scalar()
