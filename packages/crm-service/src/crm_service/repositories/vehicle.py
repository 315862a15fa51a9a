"""Vehicle persistence. Vehicles carry no tenant column; every query reaches
the tenant through the owning customer."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Row, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from crm_service.db.models import customers, vehicles
from crm_service.db.store import TenantScopedStore
from crm_service.domain.vehicle import Vehicle, VehicleFilter
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

_UNIQUE_FIELDS = ("vin", "license_plate")


def _to_row(vehicle: Vehicle) -> dict[str, Any]:
    return {
        "id": vehicle.id,
        "customer_id": vehicle.customer_id,
        "make": vehicle.make,
        "model": vehicle.model,
        "year": vehicle.year,
        "vin": vehicle.vin,
        "license_plate": vehicle.license_plate,
        "color": vehicle.color,
        "engine": vehicle.engine,
        "notes": vehicle.notes,
        "is_active": vehicle.is_active,
        "metadata": vehicle.metadata or {},
        "created_at": vehicle.created_at,
        "updated_at": vehicle.updated_at,
    }


def _from_row(row: Row[Any]) -> Vehicle:
    mapping = row._mapping
    return Vehicle(
        id=mapping["id"],
        customer_id=mapping["customer_id"],
        make=mapping["make"],
        model=mapping["model"],
        year=mapping["year"],
        vin=mapping["vin"],
        license_plate=mapping["license_plate"],
        color=mapping["color"],
        engine=mapping["engine"],
        notes=mapping["notes"],
        is_active=bool(mapping["is_active"]),
        metadata=dict(mapping["metadata"] or {}),
        created_at=as_utc(mapping["created_at"]),
        updated_at=as_utc(mapping["updated_at"]),
    )


def _scoped_select():
    return select(vehicles).select_from(with_customer(vehicles))


_DEFAULT_ORDER = (vehicles.c.year.desc(), vehicles.c.make, vehicles.c.model, vehicles.c.id)


class VehicleRepository:
    def __init__(self, store: TenantScopedStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def create(self, vehicle: Vehicle) -> Vehicle:
        await self.create_batch([vehicle])
        return vehicle

    async def create_batch(self, batch: list[Vehicle]) -> list[Vehicle]:
        """Insert every vehicle in one transaction; nothing is kept on failure."""
        tenant_id = require_tenant()
        if not batch:
            return batch
        current: Vehicle | None = None
        try:
            async with self._store.transaction(tenant_id, "create vehicles") as conn:
                for current in batch:
                    await self._ensure_customer(conn, current.customer_id)
                    await conn.execute(insert(vehicles).values(**_to_row(current)))
        except IntegrityError as exc:
            raise map_integrity_error(exc, "vehicle", self._unique_values(current)) from exc
        self._logger.debug("Created %d vehicle(s)", len(batch))
        return batch

    async def get_by_id(self, vehicle_id: str) -> Vehicle:
        return await self._get_one(vehicles.c.id == vehicle_id, vehicle_id)

    async def update(self, vehicle: Vehicle) -> Vehicle:
        tenant_id = require_tenant()
        values = _to_row(vehicle)
        for key in ("id", "customer_id", "created_at"):
            values.pop(key)
        stmt = (
            update(vehicles)
            .where(vehicles.c.id == vehicle.id, owned_by_tenant(vehicles))
            .values(**values)
        )
        try:
            affected = await self._store.execute(tenant_id, stmt, "update vehicle")
        except IntegrityError as exc:
            raise map_integrity_error(exc, "vehicle", self._unique_values(vehicle)) from exc
        if affected == 0:
            raise NotFoundError("vehicle", vehicle.id)
        return vehicle

    async def delete(self, vehicle_id: str) -> None:
        tenant_id = require_tenant()
        affected = await self._store.execute(
            tenant_id,
            delete(vehicles).where(vehicles.c.id == vehicle_id, owned_by_tenant(vehicles)),
            "delete vehicle",
        )
        if affected == 0:
            raise NotFoundError("vehicle", vehicle_id)

    async def list(self, filter: VehicleFilter) -> tuple[list[Vehicle], int]:
        tenant_id = require_tenant()
        conditions = []
        if filter.customer_id:
            conditions.append(vehicles.c.customer_id == filter.customer_id)
        if filter.search:
            conditions.append(or_(
                vehicles.c.make.icontains(filter.search, autoescape=True),
                vehicles.c.model.icontains(filter.search, autoescape=True),
                vehicles.c.vin.icontains(filter.search, autoescape=True),
                vehicles.c.license_plate.icontains(filter.search, autoescape=True),
            ))
        if filter.active_only:
            conditions.append(vehicles.c.is_active.is_(True))

        limit, offset = page_window(filter.page, filter.limit)
        async with self._store.transaction(tenant_id, "list vehicles") as conn:
            total = (await conn.execute(
                select(func.count()).select_from(with_customer(vehicles)).where(*conditions)
            )).scalar_one()
            rows = (await conn.execute(
                _scoped_select().where(*conditions).order_by(*_DEFAULT_ORDER).limit(limit).offset(offset)
            )).all()
        return [_from_row(row) for row in rows], total

    async def list_by_customer(self, customer_id: str) -> list[Vehicle]:
        return await self._get_many(vehicles.c.customer_id == customer_id)

    async def list_active_by_customer(self, customer_id: str) -> list[Vehicle]:
        return await self._get_many(
            vehicles.c.customer_id == customer_id, vehicles.c.is_active.is_(True)
        )

    async def get_by_vin(self, vin: str) -> Vehicle:
        return await self._get_one(vehicles.c.vin == vin, vin)

    async def get_by_license_plate(self, license_plate: str) -> Vehicle:
        return await self._get_one(vehicles.c.license_plate == license_plate, license_plate)

    async def search_by_make_model(self, make: str, model: str, year: int | None = None) -> list[Vehicle]:
        conditions = []
        if make:
            conditions.append(vehicles.c.make.icontains(make, autoescape=True))
        if model:
            conditions.append(vehicles.c.model.icontains(model, autoescape=True))
        if year is not None and year > 0:
            conditions.append(vehicles.c.year == year)
        return await self._get_many(*conditions)

    async def find_compatible(self, make: str, model: str, year_from: int, year_to: int) -> list[Vehicle]:
        """Active vehicles of the same make/model within [year_from, year_to]."""
        return await self._get_many(
            func.lower(vehicles.c.make) == make.lower(),
            func.lower(vehicles.c.model) == model.lower(),
            vehicles.c.year.between(year_from, year_to),
            vehicles.c.is_active.is_(True),
            order_by=(vehicles.c.year.desc(), vehicles.c.id),
        )

    async def list_by_make_model_year(self, make: str, model: str, year: int) -> list[Vehicle]:
        return await self._get_many(
            vehicles.c.make == make,
            vehicles.c.model == model,
            vehicles.c.year == year,
            order_by=(vehicles.c.created_at.desc(), vehicles.c.id),
        )

    async def exists_by_vin(self, vin: str, exclude_id: str | None = None) -> bool:
        return await self._exists("vin", vin, exclude_id)

    async def exists_by_license_plate(self, license_plate: str, exclude_id: str | None = None) -> bool:
        return await self._exists("license_plate", license_plate, exclude_id)

    async def _ensure_customer(self, conn: AsyncConnection, customer_id: str) -> None:
        found = (await conn.execute(
            select(customers.c.id).where(customers.c.id == customer_id, tenant_customers())
        )).first()
        if found is None:
            raise ReferenceNotFoundError("customer", customer_id)

    async def _get_one(self, condition, identifier: str) -> Vehicle:
        tenant_id = require_tenant()
        row = await self._store.fetch_one(tenant_id, _scoped_select().where(condition), "get vehicle")
        if row is None:
            raise NotFoundError("vehicle", identifier)
        return _from_row(row)

    async def _get_many(self, *conditions, order_by=_DEFAULT_ORDER) -> list[Vehicle]:
        tenant_id = require_tenant()
        rows = await self._store.fetch_all(
            tenant_id, _scoped_select().where(*conditions).order_by(*order_by), "list vehicles"
        )
        return [_from_row(row) for row in rows]

    async def _exists(self, column: str, value: str, exclude_id: str | None) -> bool:
        # VIN and plate are unique across all tenants, so no tenant predicate here.
        # Under PostgreSQL RLS only the caller's rows are visible; the unique
        # constraint still rejects the cross-tenant case on write.
        tenant_id = require_tenant()
        conditions = [vehicles.c[column] == value]
        if exclude_id:
            conditions.append(vehicles.c.id != exclude_id)
        count = await self._store.fetch_scalar(
            tenant_id,
            select(func.count()).select_from(vehicles).where(*conditions),
            f"check vehicle {column}",
        )
        return count > 0

    @staticmethod
    def _unique_values(vehicle: Vehicle | None) -> dict[str, str | None]:
        if vehicle is None:
            return {}
        return {field: getattr(vehicle, field) for field in _UNIQUE_FIELDS}
