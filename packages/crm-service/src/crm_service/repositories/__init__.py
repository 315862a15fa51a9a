"""Entity repositories: every query runs through TenantScopedStore."""

from crm_service.repositories.customer import CustomerRepository
from crm_service.repositories.note import CustomerNoteRepository
from crm_service.repositories.vehicle import VehicleRepository

__all__ = [
    "CustomerNoteRepository",
    "CustomerRepository",
    "VehicleRepository",
]
