"""Domain services: business rules independent of transport."""

from crm_service.services.customer import CustomerService
from crm_service.services.vehicle import CompatibilityInfo, VehicleService

__all__ = [
    "CompatibilityInfo",
    "CustomerService",
    "VehicleService",
]
