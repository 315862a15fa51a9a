"""Domain model: Customer, Vehicle and CustomerNote."""

from crm_service.domain.customer import (
    Customer,
    CustomerCreate,
    CustomerFilter,
    CustomerSearchFilter,
    CustomerType,
    CustomerUpdate,
    new_customer,
)
from crm_service.domain.note import (
    CustomerNote,
    CustomerNoteCreate,
    CustomerNoteFilter,
    NoteType,
    new_customer_note,
)
from crm_service.domain.vehicle import (
    Vehicle,
    VehicleCreate,
    VehicleFilter,
    VehicleUpdate,
    new_vehicle,
)

__all__ = [
    "Customer",
    "CustomerCreate",
    "CustomerFilter",
    "CustomerNote",
    "CustomerNoteCreate",
    "CustomerNoteFilter",
    "CustomerSearchFilter",
    "CustomerType",
    "CustomerUpdate",
    "NoteType",
    "Vehicle",
    "VehicleCreate",
    "VehicleFilter",
    "VehicleUpdate",
    "new_customer",
    "new_customer_note",
    "new_vehicle",
]
