"""Vehicle business rules: ownership, VIN format and global uniqueness."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from crm_service.domain.vehicle import (
    COMPATIBLE_YEAR_SPAN,
    Vehicle,
    VehicleCreate,
    VehicleFilter,
    VehicleUpdate,
    new_vehicle,
    normalize_vin,
)
from crm_service.errors import DuplicateError, NotFoundError, ReferenceNotFoundError
from crm_service.repositories.customer import CustomerRepository
from crm_service.repositories.vehicle import VehicleRepository


@dataclass
class CompatibilityInfo:
    vehicle: Vehicle
    compatibility_string: str
    compatible_vehicles: int
    exact_matches: int
    year_range: str
    matches: list[Vehicle] = field(default_factory=list)


class VehicleService:
    def __init__(
        self,
        vehicles: VehicleRepository,
        customers: CustomerRepository,
        logger: logging.Logger | None = None,
    ) -> None:
        self._vehicles = vehicles
        self._customers = customers
        self._logger = logger or logging.getLogger(__name__)

    async def create_vehicle(self, create: VehicleCreate) -> Vehicle:
        await self._require_customer(create.customer_id)
        vehicle = new_vehicle(create)
        vehicle.validate()
        await self._check_unique(vehicle.vin, vehicle.license_plate)
        await self._vehicles.create(vehicle)
        self._logger.info("Vehicle created", extra={"vehicle_id": vehicle.id})
        return vehicle

    async def create_vehicles_for_customer(
        self, customer_id: str, creates: list[VehicleCreate]
    ) -> list[Vehicle]:
        """Validate every vehicle, check uniqueness, then insert all in one transaction."""
        await self._require_customer(customer_id)
        batch = [new_vehicle(replace(create, customer_id=customer_id)) for create in creates]
        for vehicle in batch:
            vehicle.validate()
        for vehicle in batch:
            await self._check_unique(vehicle.vin, vehicle.license_plate)
        return await self._vehicles.create_batch(batch)

    async def get_vehicle(self, vehicle_id: str) -> Vehicle:
        return await self._vehicles.get_by_id(vehicle_id)

    async def update_vehicle(self, vehicle_id: str, update: VehicleUpdate) -> Vehicle:
        vehicle = await self._vehicles.get_by_id(vehicle_id)
        vin = normalize_vin(update.vin)
        vin = vin if vin and vin != vehicle.vin else None
        plate = update.license_plate
        plate = plate if plate and plate != vehicle.license_plate else None
        await self._check_unique(vin, plate, exclude_id=vehicle_id)

        vehicle.apply_update(update)
        vehicle.validate()
        return await self._vehicles.update(vehicle)

    async def delete_vehicle(self, vehicle_id: str) -> None:
        await self._vehicles.delete(vehicle_id)
        self._logger.info("Vehicle deleted", extra={"vehicle_id": vehicle_id})

    async def list_vehicles(self, filter: VehicleFilter) -> tuple[list[Vehicle], int]:
        return await self._vehicles.list(filter)

    async def list_vehicles_by_customer(self, customer_id: str) -> list[Vehicle]:
        await self._require_customer(customer_id)
        return await self._vehicles.list_by_customer(customer_id)

    async def get_vehicle_by_vin(self, vin: str) -> Vehicle:
        return await self._vehicles.get_by_vin(normalize_vin(vin))

    async def get_vehicle_by_license_plate(self, license_plate: str) -> Vehicle:
        return await self._vehicles.get_by_license_plate(license_plate)

    async def search_vehicles(self, make: str, model: str, year: int | None = None) -> list[Vehicle]:
        return await self._vehicles.search_by_make_model(make, model, year)

    async def find_compatible_vehicles(
        self, make: str, model: str, year: int, year_range: int = COMPATIBLE_YEAR_SPAN
    ) -> list[Vehicle]:
        return await self._vehicles.find_compatible(make, model, year - year_range, year + year_range)

    async def get_compatibility_info(self, vehicle_id: str) -> CompatibilityInfo:
        vehicle = await self._vehicles.get_by_id(vehicle_id)
        compatible = await self.find_compatible_vehicles(vehicle.make, vehicle.model, vehicle.year)
        exact = await self._vehicles.list_by_make_model_year(vehicle.make, vehicle.model, vehicle.year)
        return CompatibilityInfo(
            vehicle=vehicle,
            compatibility_string=vehicle.compatibility_string,
            compatible_vehicles=len(compatible),
            exact_matches=len(exact),
            year_range=f"{vehicle.year - COMPATIBLE_YEAR_SPAN}-{vehicle.year + COMPATIBLE_YEAR_SPAN}",
            matches=compatible,
        )

    async def activate_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = await self._vehicles.get_by_id(vehicle_id)
        vehicle.activate()
        return await self._vehicles.update(vehicle)

    async def deactivate_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = await self._vehicles.get_by_id(vehicle_id)
        vehicle.deactivate()
        return await self._vehicles.update(vehicle)

    async def _require_customer(self, customer_id: str) -> None:
        try:
            await self._customers.get_by_id(customer_id)
        except NotFoundError as exc:
            raise ReferenceNotFoundError("customer", customer_id) from exc

    async def _check_unique(
        self, vin: str | None, license_plate: str | None, exclude_id: str | None = None
    ) -> None:
        if vin and await self._vehicles.exists_by_vin(vin, exclude_id):
            raise DuplicateError("vehicle", "vin", vin)
        if license_plate and await self._vehicles.exists_by_license_plate(license_plate, exclude_id):
            raise DuplicateError("vehicle", "license_plate", license_plate)
