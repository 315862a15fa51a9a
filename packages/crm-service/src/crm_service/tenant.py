"""Tenant context carried through a call without global mutable state.

Every repository operation MUST:
1. Call require_tenant() before building any SQL
2. Hand the tenant id to TenantScopedStore, which binds it to the session

The value lives in a ContextVar, so each asyncio task (one per gRPC call)
sees only what was attached in its own context.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from crm_service.errors import MissingTenantError


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise MissingTenantError()


_current_tenant: ContextVar[TenantContext | None] = ContextVar("crm_tenant", default=None)


@contextmanager
def tenant_scope(tenant_id: str) -> Iterator[TenantContext]:
    """Attach *tenant_id* for the duration of the block.

    The previous value is restored on exit, so the enclosing context is
    left exactly as it was.
    """
    ctx = TenantContext(tenant_id=tenant_id)
    token = _current_tenant.set(ctx)
    try:
        yield ctx
    finally:
        _current_tenant.reset(token)


def current_tenant() -> TenantContext | None:
    return _current_tenant.get()


def require_tenant() -> str:
    ctx = _current_tenant.get()
    if ctx is None:
        raise MissingTenantError()
    return ctx.tenant_id
