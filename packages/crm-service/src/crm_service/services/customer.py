"""Customer business rules above the repositories, independent of transport."""

from __future__ import annotations

import logging
from typing import Any

from crm_service.domain.customer import (
    Customer,
    CustomerCreate,
    CustomerFilter,
    CustomerSearchFilter,
    CustomerUpdate,
    new_customer,
)
from crm_service.domain.note import CustomerNote, CustomerNoteCreate, new_customer_note
from crm_service.errors import DuplicateError, NotFoundError, ReferenceNotFoundError
from crm_service.repositories.customer import CustomerRepository
from crm_service.repositories.note import CustomerNoteRepository
from crm_service.repositories.vehicle import VehicleRepository

RECENT_NOTES_LIMIT = 10


class CustomerService:
    """Validation, uniqueness and the soft/hard delete rule for customers.

    Uniqueness is pre-checked here to report the offending field early;
    the unique constraints in the database remain the authoritative guard
    and surface as DuplicateError from the repository.
    """

    def __init__(
        self,
        customers: CustomerRepository,
        vehicles: VehicleRepository,
        notes: CustomerNoteRepository,
        logger: logging.Logger | None = None,
    ) -> None:
        self._customers = customers
        self._vehicles = vehicles
        self._notes = notes
        self._logger = logger or logging.getLogger(__name__)

    async def create_customer(self, create: CustomerCreate) -> Customer:
        customer = new_customer(create)
        customer.validate()
        await self._check_unique(customer.email, customer.tax_id)
        await self._customers.create(customer)
        self._logger.info("Customer created", extra={"customer_id": customer.id})
        return customer

    async def get_customer(
        self, customer_id: str, include_vehicles: bool = False, include_notes: bool = False
    ) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        if include_vehicles:
            customer.vehicles = await self._vehicles.list_by_customer(customer_id)
        if include_notes:
            customer.customer_notes = await self._notes.list_recent_by_customer(
                customer_id, RECENT_NOTES_LIMIT
            )
        return customer

    async def update_customer(self, customer_id: str, update: CustomerUpdate) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        email = update.email if update.email and update.email != customer.email else None
        tax_id = update.tax_id if update.tax_id and update.tax_id != customer.tax_id else None
        await self._check_unique(email, tax_id, exclude_id=customer_id)

        customer.apply_update(update)
        customer.validate()
        return await self._customers.update(customer)

    async def delete_customer(self, customer_id: str) -> Customer | None:
        """Deactivate a customer that still owns active vehicles, remove it otherwise.

        Returns the deactivated customer on the soft path, None when the
        record was removed.
        """
        customer = await self._customers.get_by_id(customer_id)
        active = await self._vehicles.list_active_by_customer(customer_id)
        if active:
            customer.deactivate()
            await self._customers.update(customer)
            self._logger.info(
                "Customer deactivated; %d active vehicle(s) remain", len(active),
                extra={"customer_id": customer_id},
            )
            return customer
        await self._customers.delete(customer_id)
        self._logger.info("Customer deleted", extra={"customer_id": customer_id})
        return None

    async def list_customers(self, filter: CustomerFilter) -> tuple[list[Customer], int]:
        return await self._customers.list(filter)

    async def search_customers(self, filter: CustomerSearchFilter) -> list[Customer]:
        return await self._customers.search(filter)

    async def get_customer_by_email(self, email: str) -> Customer:
        return await self._customers.get_by_email(email)

    async def get_customer_by_tax_id(self, tax_id: str) -> Customer:
        return await self._customers.get_by_tax_id(tax_id)

    async def activate_customer(self, customer_id: str) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        customer.activate()
        return await self._customers.update(customer)

    async def deactivate_customer(self, customer_id: str) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        customer.deactivate()
        return await self._customers.update(customer)

    async def add_customer_note(self, create: CustomerNoteCreate) -> CustomerNote:
        await self._require_customer(create.customer_id)
        note = new_customer_note(create)
        note.validate()
        return await self._notes.create(note)

    async def get_customer_notes(
        self, customer_id: str, note_type: str = "", limit: int = 0
    ) -> list[CustomerNote]:
        await self._require_customer(customer_id)
        if note_type:
            return await self._notes.list_by_customer_and_type(customer_id, note_type)
        if limit > 0:
            return await self._notes.list_recent_by_customer(customer_id, limit)
        return await self._notes.list_by_customer(customer_id)

    async def set_customer_preference(self, customer_id: str, key: str, value: Any) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        customer.set_preference(key, value)
        return await self._customers.update(customer)

    async def get_customer_preference(self, customer_id: str, key: str) -> Any:
        customer = await self._customers.get_by_id(customer_id)
        if not customer.has_preference(key):
            raise NotFoundError("preference", key, f"preference {key} not found")
        return customer.get_preference(key)

    async def _require_customer(self, customer_id: str) -> Customer:
        try:
            return await self._customers.get_by_id(customer_id)
        except NotFoundError as exc:
            raise ReferenceNotFoundError("customer", customer_id) from exc

    async def _check_unique(
        self, email: str | None, tax_id: str | None, exclude_id: str | None = None
    ) -> None:
        if email and await self._customers.exists_by_email(email, exclude_id):
            raise DuplicateError("customer", "email", email)
        if tax_id and await self._customers.exists_by_tax_id(tax_id, exclude_id):
            raise DuplicateError("customer", "tax_id", tax_id)
