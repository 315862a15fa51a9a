"""Customer note persistence; notes are scoped through their customer."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Row, delete, func, insert, select
from sqlalchemy.exc import IntegrityError

from crm_service.db.models import customer_notes, customers
from crm_service.db.store import TenantScopedStore
from crm_service.domain.note import CustomerNote, CustomerNoteFilter
from crm_service.errors import NotFoundError, ReferenceNotFoundError
from crm_service.repositories.base import (
    as_utc,
    map_integrity_error,
    owned_by_tenant,
    page_window,
    tenant_customers,
    with_customer,
)
from crm_service.tenant import require_tenant

DATE_RANGE_LIMIT = 1000

_NEWEST_FIRST = (customer_notes.c.created_at.desc(), customer_notes.c.id)


def _from_row(row: Row[Any]) -> CustomerNote:
    return CustomerNote(
        id=row.id,
        customer_id=row.customer_id,
        staff_id=row.staff_id,
        staff_name=row.staff_name,
        note=row.note,
        type=row.type,
        created_at=as_utc(row.created_at),
    )


def _scoped_select():
    return select(customer_notes).select_from(with_customer(customer_notes))


class CustomerNoteRepository:
    def __init__(self, store: TenantScopedStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def create(self, note: CustomerNote) -> CustomerNote:
        tenant_id = require_tenant()
        try:
            async with self._store.transaction(tenant_id, "create customer note") as conn:
                found = (await conn.execute(
                    select(customers.c.id).where(customers.c.id == note.customer_id, tenant_customers())
                )).first()
                if found is None:
                    raise ReferenceNotFoundError("customer", note.customer_id)
                await conn.execute(insert(customer_notes).values(
                    id=note.id,
                    customer_id=note.customer_id,
                    staff_id=note.staff_id,
                    staff_name=note.staff_name,
                    note=note.note,
                    type=note.type,
                    created_at=note.created_at,
                ))
        except IntegrityError as exc:
            raise map_integrity_error(exc, "customer note", {}) from exc
        return note

    async def get_by_id(self, note_id: str) -> CustomerNote:
        tenant_id = require_tenant()
        row = await self._store.fetch_one(
            tenant_id, _scoped_select().where(customer_notes.c.id == note_id), "get customer note"
        )
        if row is None:
            raise NotFoundError("customer note", note_id)
        return _from_row(row)

    async def delete(self, note_id: str) -> None:
        tenant_id = require_tenant()
        affected = await self._store.execute(
            tenant_id,
            delete(customer_notes).where(
                customer_notes.c.id == note_id, owned_by_tenant(customer_notes)
            ),
            "delete customer note",
        )
        if affected == 0:
            raise NotFoundError("customer note", note_id)

    async def list(self, filter: CustomerNoteFilter) -> tuple[list[CustomerNote], int]:
        tenant_id = require_tenant()
        conditions = []
        if filter.customer_id:
            conditions.append(customer_notes.c.customer_id == filter.customer_id)
        if filter.type:
            conditions.append(customer_notes.c.type == filter.type)
        if filter.staff_id:
            conditions.append(customer_notes.c.staff_id == filter.staff_id)
        if filter.date_from is not None:
            conditions.append(customer_notes.c.created_at >= filter.date_from)
        if filter.date_to is not None:
            conditions.append(customer_notes.c.created_at <= filter.date_to)

        limit, offset = page_window(filter.page, filter.limit)
        async with self._store.transaction(tenant_id, "list customer notes") as conn:
            total = (await conn.execute(
                select(func.count()).select_from(with_customer(customer_notes)).where(*conditions)
            )).scalar_one()
            rows = (await conn.execute(
                _scoped_select().where(*conditions).order_by(*_NEWEST_FIRST).limit(limit).offset(offset)
            )).all()
        return [_from_row(row) for row in rows], total

    async def list_by_customer(self, customer_id: str) -> list[CustomerNote]:
        tenant_id = require_tenant()
        rows = await self._store.fetch_all(
            tenant_id,
            _scoped_select().where(customer_notes.c.customer_id == customer_id).order_by(*_NEWEST_FIRST),
            "list customer notes",
        )
        return [_from_row(row) for row in rows]

    async def list_by_customer_and_type(self, customer_id: str, note_type: str) -> list[CustomerNote]:
        notes, _ = await self.list(
            CustomerNoteFilter(customer_id=customer_id, type=note_type, limit=DATE_RANGE_LIMIT)
        )
        return notes

    async def list_by_staff(self, staff_id: str, page: int = 0, limit: int = 0) -> tuple[list[CustomerNote], int]:
        return await self.list(CustomerNoteFilter(staff_id=staff_id, page=page, limit=limit))

    async def list_by_type(self, note_type: str, page: int = 0, limit: int = 0) -> tuple[list[CustomerNote], int]:
        return await self.list(CustomerNoteFilter(type=note_type, page=page, limit=limit))

    async def list_by_date_range(
        self, customer_id: str, date_from: datetime | None, date_to: datetime | None
    ) -> list[CustomerNote]:
        notes, _ = await self.list(CustomerNoteFilter(
            customer_id=customer_id, date_from=date_from, date_to=date_to, limit=DATE_RANGE_LIMIT,
        ))
        return notes

    async def list_recent_by_customer(self, customer_id: str, limit: int = 10) -> list[CustomerNote]:
        notes, _ = await self.list(CustomerNoteFilter(customer_id=customer_id, limit=limit))
        return notes
