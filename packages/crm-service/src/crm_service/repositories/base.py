"""Helpers shared by the entity repositories."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import ColumnElement, Table, and_, select
from sqlalchemy.exc import IntegrityError

from crm_service.db.models import customers
from crm_service.db.store import current_tenant_setting
from crm_service.errors import CRMError, DuplicateError, ReferenceNotFoundError, RepositoryError

DEFAULT_LIST_LIMIT = 50


def page_window(page: int, limit: int, default_limit: int = DEFAULT_LIST_LIMIT) -> tuple[int, int]:
    """Return (limit, offset) for a 1-based *page*; page <= 0 means the first page."""
    if limit <= 0:
        limit = default_limit
    offset = (page - 1) * limit if page > 0 else 0
    return limit, offset


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def tenant_customers() -> ColumnElement[bool]:
    """Predicate restricting customers to the tenant bound on the session."""
    return customers.c.tenant_id == current_tenant_setting()


def owned_by_tenant(table: Table) -> ColumnElement[bool]:
    """Predicate for child tables that reach the tenant through customer_id."""
    return table.c.customer_id.in_(select(customers.c.id).where(tenant_customers()))


def with_customer(table: Table):
    """Join clause from a child table to its owning, tenant-visible customer."""
    return table.join(customers, and_(table.c.customer_id == customers.c.id, tenant_customers()))


def map_integrity_error(
    exc: IntegrityError, entity: str, candidates: dict[str, str | None]
) -> CRMError:
    """Translate a constraint violation into the matching domain error.

    *candidates* maps unique column names to the values just written; the
    first one named in the driver message wins.
    """
    message = str(exc.orig).lower()
    if "unique" in message or "duplicate" in message:
        for field, value in candidates.items():
            if field in message:
                return DuplicateError(entity, field, value or "")
        return DuplicateError(entity, "unique key")
    if "foreign key" in message:
        return ReferenceNotFoundError("customer")
    return RepositoryError(f"write {entity}", exc)
