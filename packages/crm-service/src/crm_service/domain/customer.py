"""Customer aggregate, its create/update/filter shapes and validation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from crm_service.domain.values import (
    PropertyBag,
    check_length,
    utcnow,
    validate_json_value,
    validate_property_bag,
)
from crm_service.errors import ValidationError

if TYPE_CHECKING:
    from crm_service.domain.note import CustomerNote
    from crm_service.domain.vehicle import Vehicle


class CustomerType(Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"


CUSTOMER_TYPES = {t.value for t in CustomerType}

SORT_FIELDS = ("name", "created_at", "company_name")
SEARCH_FIELDS = ("name", "email", "phone", "tax_id", "company_name")


@dataclass
class Customer:
    id: str
    tenant_id: str
    first_name: str
    last_name: str
    customer_type: str = CustomerType.INDIVIDUAL.value
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None
    tax_id: str | None = None
    address: str | None = None
    birthday: date | None = None
    notes: str | None = None
    preferences: PropertyBag = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Loaded on demand, never persisted
    vehicles: list[Vehicle] = field(default_factory=list)
    customer_notes: list[CustomerNote] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def display_name(self) -> str:
        """Company name for business customers that have one, else full name."""
        if self.is_business and self.company_name:
            return self.company_name
        return self.full_name

    @property
    def is_business(self) -> bool:
        return self.customer_type == CustomerType.BUSINESS.value

    @property
    def is_individual(self) -> bool:
        return self.customer_type == CustomerType.INDIVIDUAL.value

    def activate(self) -> None:
        self.is_active = True
        self.updated_at = utcnow()

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = utcnow()

    def apply_update(self, update: CustomerUpdate) -> None:
        """Overwrite only the fields *update* carries; always stamps updated_at."""
        for name in _UPDATABLE_FIELDS:
            value = getattr(update, name)
            if value is not None:
                setattr(self, name, value)
        if update.preferences is not None:
            self.preferences = validate_property_bag("preferences", update.preferences)
        self.updated_at = utcnow()

    def set_preference(self, key: str, value: Any) -> None:
        self.preferences[key] = validate_json_value(f"preferences.{key}", value)
        self.updated_at = utcnow()

    def get_preference(self, key: str, default: Any = None) -> Any:
        return self.preferences.get(key, default)

    def has_preference(self, key: str) -> bool:
        return key in self.preferences

    def validate(self) -> None:
        if not self.first_name:
            raise ValidationError("first_name", "first name is required")
        check_length("first_name", self.first_name, 100)
        if not self.last_name:
            raise ValidationError("last_name", "last name is required")
        check_length("last_name", self.last_name, 100)
        if self.customer_type not in CUSTOMER_TYPES:
            raise ValidationError("customer_type", "invalid customer type")
        if self.is_business and not self.company_name:
            raise ValidationError("company_name", "company name is required for business customers")
        if self.email and not is_valid_email(self.email):
            raise ValidationError("email", "invalid email format")
        check_length("phone", self.phone, 20)
        check_length("company_name", self.company_name, 255)
        check_length("tax_id", self.tax_id, 50)
        check_length("address", self.address, 500)
        check_length("notes", self.notes, 1000)


@dataclass
class CustomerCreate:
    first_name: str
    last_name: str
    customer_type: str = CustomerType.INDIVIDUAL.value
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None
    tax_id: str | None = None
    address: str | None = None
    birthday: date | None = None
    notes: str | None = None
    preferences: PropertyBag | None = None


@dataclass
class CustomerUpdate:
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    customer_type: str | None = None
    company_name: str | None = None
    tax_id: str | None = None
    address: str | None = None
    birthday: date | None = None
    notes: str | None = None
    preferences: PropertyBag | None = None
    is_active: bool | None = None


_UPDATABLE_FIELDS = (
    "first_name", "last_name", "email", "phone", "customer_type", "company_name",
    "tax_id", "address", "birthday", "notes", "is_active",
)


@dataclass
class CustomerFilter:
    search: str = ""
    customer_type: str = ""
    active_only: bool = False
    page: int = 0
    limit: int = 0
    sort_by: str = ""
    sort_order: str = ""


@dataclass
class CustomerSearchFilter:
    query: str
    search_fields: list[str] = field(default_factory=list)
    limit: int = 0


def new_customer(create: CustomerCreate, tenant_id: str = "") -> Customer:
    """Build an active customer with fresh id and matching timestamps."""
    now = utcnow()
    return Customer(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        first_name=create.first_name,
        last_name=create.last_name,
        customer_type=create.customer_type or CustomerType.INDIVIDUAL.value,
        email=create.email,
        phone=create.phone,
        company_name=create.company_name,
        tax_id=create.tax_id,
        address=create.address,
        birthday=create.birthday,
        notes=create.notes,
        preferences=validate_property_bag("preferences", create.preferences),
        is_active=True,
        created_at=now,
        updated_at=now,
    )


def is_valid_email(email: str) -> bool:
    return 3 < len(email) <= 255 and "@" in email and "." in email
