"""Customer persistence, scoped to the tenant bound on each session."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Row, case, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError

from crm_service.db.models import customers
from crm_service.db.store import TenantScopedStore
from crm_service.domain.customer import Customer, CustomerFilter, CustomerSearchFilter
from crm_service.errors import NotFoundError
from crm_service.repositories.base import as_utc, map_integrity_error, page_window, tenant_customers
from crm_service.tenant import require_tenant

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_SEARCH_FIELDS = ("name", "email", "phone", "tax_id")

_UNIQUE_FIELDS = ("email", "tax_id")


def _to_row(customer: Customer) -> dict[str, Any]:
    return {
        "id": customer.id,
        "tenant_id": customer.tenant_id,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "email": customer.email,
        "phone": customer.phone,
        "customer_type": customer.customer_type,
        "company_name": customer.company_name,
        "tax_id": customer.tax_id,
        "address": customer.address,
        "birthday": customer.birthday,
        "notes": customer.notes,
        "preferences": customer.preferences or {},
        "is_active": customer.is_active,
        "created_at": customer.created_at,
        "updated_at": customer.updated_at,
    }


def _from_row(row: Row[Any]) -> Customer:
    return Customer(
        id=row.id,
        tenant_id=row.tenant_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        customer_type=row.customer_type,
        company_name=row.company_name,
        tax_id=row.tax_id,
        address=row.address,
        birthday=row.birthday,
        notes=row.notes,
        preferences=dict(row.preferences or {}),
        is_active=bool(row.is_active),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _search_condition(field: str, pattern: str):
    c = customers.c
    if field == "name":
        return or_(
            c.first_name.icontains(pattern, autoescape=True),
            c.last_name.icontains(pattern, autoescape=True),
            (c.first_name + " " + c.last_name).icontains(pattern, autoescape=True),
        )
    if field in ("email", "phone", "tax_id", "company_name"):
        return c[field].icontains(pattern, autoescape=True)
    return None


class CustomerRepository:
    def __init__(self, store: TenantScopedStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def create(self, customer: Customer) -> Customer:
        tenant_id = require_tenant()
        customer.tenant_id = tenant_id
        try:
            await self._store.execute(
                tenant_id, insert(customers).values(**_to_row(customer)), "create customer"
            )
        except IntegrityError as exc:
            raise map_integrity_error(exc, "customer", self._unique_values(customer)) from exc
        self._logger.debug("Customer %s created", customer.id)
        return customer

    async def get_by_id(self, customer_id: str) -> Customer:
        tenant_id = require_tenant()
        row = await self._store.fetch_one(
            tenant_id,
            select(customers).where(customers.c.id == customer_id, tenant_customers()),
            "get customer",
        )
        if row is None:
            raise NotFoundError("customer", customer_id)
        return _from_row(row)

    async def update(self, customer: Customer) -> Customer:
        tenant_id = require_tenant()
        values = _to_row(customer)
        for key in ("id", "tenant_id", "created_at"):
            values.pop(key)
        stmt = (
            update(customers)
            .where(customers.c.id == customer.id, tenant_customers())
            .values(**values)
        )
        try:
            affected = await self._store.execute(tenant_id, stmt, "update customer")
        except IntegrityError as exc:
            raise map_integrity_error(exc, "customer", self._unique_values(customer)) from exc
        if affected == 0:
            raise NotFoundError("customer", customer.id)
        return customer

    async def delete(self, customer_id: str) -> None:
        tenant_id = require_tenant()
        affected = await self._store.execute(
            tenant_id,
            delete(customers).where(customers.c.id == customer_id, tenant_customers()),
            "delete customer",
        )
        if affected == 0:
            raise NotFoundError("customer", customer_id)

    async def list(self, filter: CustomerFilter) -> tuple[list[Customer], int]:
        """One page of matching customers plus the total match count."""
        tenant_id = require_tenant()
        conditions = [tenant_customers()]
        if filter.search:
            conditions.append(or_(
                customers.c.first_name.icontains(filter.search, autoescape=True),
                customers.c.last_name.icontains(filter.search, autoescape=True),
                customers.c.email.icontains(filter.search, autoescape=True),
                customers.c.company_name.icontains(filter.search, autoescape=True),
            ))
        if filter.customer_type:
            conditions.append(customers.c.customer_type == filter.customer_type)
        if filter.active_only:
            conditions.append(customers.c.is_active.is_(True))

        limit, offset = page_window(filter.page, filter.limit)
        stmt = (
            select(customers)
            .where(*conditions)
            .order_by(*self._ordering(filter.sort_by, filter.sort_order), customers.c.id)
            .limit(limit)
            .offset(offset)
        )
        async with self._store.transaction(tenant_id, "list customers") as conn:
            total = (await conn.execute(
                select(func.count()).select_from(customers).where(*conditions)
            )).scalar_one()
            rows = (await conn.execute(stmt)).all()
        return [_from_row(row) for row in rows], total

    async def search(self, filter: CustomerSearchFilter) -> list[Customer]:
        """Active customers matching *query*, best matches first."""
        tenant_id = require_tenant()
        if not filter.query:
            return []
        fields = filter.search_fields or DEFAULT_SEARCH_FIELDS
        matches = [cond for cond in (_search_condition(f, filter.query) for f in fields) if cond is not None]
        if not matches:
            return []

        c = customers.c
        relevance = case(
            (or_(c.first_name.icontains(filter.query, autoescape=True),
                 c.last_name.icontains(filter.query, autoescape=True)), 1),
            (c.email == filter.query, 2),
            (c.phone == filter.query, 3),
            else_=4,
        )
        stmt = (
            select(customers)
            .where(tenant_customers(), c.is_active.is_(True), or_(*matches))
            .order_by(relevance, c.first_name, c.last_name)
            .limit(filter.limit if filter.limit > 0 else DEFAULT_SEARCH_LIMIT)
        )
        rows = await self._store.fetch_all(tenant_id, stmt, "search customers")
        return [_from_row(row) for row in rows]

    async def get_by_email(self, email: str) -> Customer:
        return await self._get_by("email", email)

    async def get_by_tax_id(self, tax_id: str) -> Customer:
        return await self._get_by("tax_id", tax_id)

    async def exists_by_email(self, email: str, exclude_id: str | None = None) -> bool:
        return await self._exists("email", email, exclude_id)

    async def exists_by_tax_id(self, tax_id: str, exclude_id: str | None = None) -> bool:
        return await self._exists("tax_id", tax_id, exclude_id)

    async def _get_by(self, column: str, value: str) -> Customer:
        tenant_id = require_tenant()
        row = await self._store.fetch_one(
            tenant_id,
            select(customers).where(customers.c[column] == value, tenant_customers()),
            f"get customer by {column}",
        )
        if row is None:
            raise NotFoundError("customer", value)
        return _from_row(row)

    async def _exists(self, column: str, value: str, exclude_id: str | None) -> bool:
        tenant_id = require_tenant()
        conditions = [customers.c[column] == value, tenant_customers()]
        if exclude_id:
            conditions.append(customers.c.id != exclude_id)
        count = await self._store.fetch_scalar(
            tenant_id,
            select(func.count()).select_from(customers).where(*conditions),
            f"check customer {column}",
        )
        return count > 0

    @staticmethod
    def _ordering(sort_by: str, sort_order: str) -> list:
        def direction(column):
            return column.desc() if sort_order == "desc" else column.asc()

        if sort_by == "name":
            return [direction(customers.c.first_name), direction(customers.c.last_name)]
        if sort_by == "created_at":
            return [direction(customers.c.created_at)]
        if sort_by == "company_name":
            return [direction(customers.c.company_name)]
        return [customers.c.created_at.desc()]

    @staticmethod
    def _unique_values(customer: Customer) -> dict[str, str | None]:
        return {field: getattr(customer, field) for field in _UNIQUE_FIELDS}
