"""Schema creation with PostgreSQL row-level security.

FORCE RLS is applied on customers, vehicles and customer_notes, so the
table owner is filtered too. vehicles and customer_notes carry no
tenant_id; their policies resolve the tenant through the owning customer.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from crm_service.db.models import Base
from crm_service.db.store import TENANT_SETTING

logger = logging.getLogger(__name__)

_TENANT_EXPR = f"current_setting('{TENANT_SETTING}', true)"

RLS_POLICIES: dict[str, str] = {
    "customers": f"tenant_id = {_TENANT_EXPR}",
    "vehicles": (
        "EXISTS (SELECT 1 FROM customers c "
        f"WHERE c.id = vehicles.customer_id AND c.tenant_id = {_TENANT_EXPR})"
    ),
    "customer_notes": (
        "EXISTS (SELECT 1 FROM customers c "
        f"WHERE c.id = customer_notes.customer_id AND c.tenant_id = {_TENANT_EXPR})"
    ),
}


def rls_statements() -> list[str]:
    statements: list[str] = []
    for table, predicate in RLS_POLICIES.items():
        policy = f"{table}_tenant_isolation"
        statements += [
            f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY",
            f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {policy} ON {table}",
            f"CREATE POLICY {policy} ON {table} USING ({predicate}) WITH CHECK ({predicate})",
        ]
    return statements


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables; on PostgreSQL also install tenant policies."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if conn.dialect.name == "postgresql":
            for statement in rls_statements():
                await conn.execute(text(statement))
            logger.info("Row-level security enabled on %d tables", len(RLS_POLICIES))


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
