"""Vehicle entity owned by a customer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crm_service.domain.values import (
    PropertyBag,
    check_length,
    utcnow,
    validate_json_value,
    validate_property_bag,
)
from crm_service.errors import ValidationError

MIN_YEAR = 1900
MAX_YEAR = 2100
VIN_LENGTH = 17
COMPATIBLE_YEAR_SPAN = 3

# I, O and Q are left out of the VIN alphabet (confusable with 1 and 0)
_VIN_FORBIDDEN = frozenset("IOQ")


@dataclass
class Vehicle:
    id: str
    customer_id: str
    make: str
    model: str
    year: int
    vin: str | None = None
    license_plate: str | None = None
    color: str | None = None
    engine: str | None = None
    notes: str | None = None
    is_active: bool = True
    metadata: PropertyBag = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.year} {self.make} {self.model}"

    @property
    def full_description(self) -> str:
        description = self.display_name
        if self.color:
            description += f" ({self.color})"
        if self.license_plate:
            description += f" - Plate: {self.license_plate}"
        return description

    @property
    def compatibility_string(self) -> str:
        return f"{self.make} {self.model} {self.year}"

    def is_compatible_with(self, other: Vehicle | None) -> bool:
        """Same make and model, model years at most three apart."""
        if other is None:
            return False
        if self.make != other.make or self.model != other.model:
            return False
        return abs(self.year - other.year) <= COMPATIBLE_YEAR_SPAN

    def activate(self) -> None:
        self.is_active = True
        self.updated_at = utcnow()

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = utcnow()

    def apply_update(self, update: VehicleUpdate) -> None:
        for name in _UPDATABLE_FIELDS:
            value = getattr(update, name)
            if value is not None:
                setattr(self, name, value)
        if update.vin is not None:
            self.vin = normalize_vin(update.vin)
        if update.metadata is not None:
            self.metadata = validate_property_bag("metadata", update.metadata)
        self.updated_at = utcnow()

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = validate_json_value(f"metadata.{key}", value)
        self.updated_at = utcnow()

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def validate(self) -> None:
        if not self.customer_id:
            raise ValidationError("customer_id", "customer id is required")
        if not self.make:
            raise ValidationError("make", "make is required")
        check_length("make", self.make, 50)
        if not self.model:
            raise ValidationError("model", "model is required")
        check_length("model", self.model, 50)
        if not MIN_YEAR <= self.year <= MAX_YEAR:
            raise ValidationError("year", f"year must be between {MIN_YEAR} and {MAX_YEAR}")
        self.validate_vin()
        check_length("license_plate", self.license_plate, 20)
        check_length("color", self.color, 30)
        check_length("engine", self.engine, 100)
        check_length("notes", self.notes, 500)

    def validate_vin(self) -> None:
        if not self.vin:
            return
        if len(self.vin) != VIN_LENGTH:
            raise ValidationError("vin", f"VIN must be exactly {VIN_LENGTH} characters")
        vin = self.vin.upper()
        if not vin.isascii() or not vin.isalnum():
            raise ValidationError("vin", "VIN must contain only letters and digits")
        if _VIN_FORBIDDEN & set(vin):
            raise ValidationError("vin", "VIN cannot contain the letters I, O or Q")


@dataclass
class VehicleCreate:
    customer_id: str
    make: str
    model: str
    year: int
    vin: str | None = None
    license_plate: str | None = None
    color: str | None = None
    engine: str | None = None
    notes: str | None = None
    metadata: PropertyBag | None = None


@dataclass
class VehicleUpdate:
    make: str | None = None
    model: str | None = None
    year: int | None = None
    vin: str | None = None
    license_plate: str | None = None
    color: str | None = None
    engine: str | None = None
    notes: str | None = None
    is_active: bool | None = None
    metadata: PropertyBag | None = None


_UPDATABLE_FIELDS = (
    "make", "model", "year", "license_plate", "color", "engine", "notes", "is_active",
)


@dataclass
class VehicleFilter:
    customer_id: str = ""
    search: str = ""
    active_only: bool = False
    page: int = 0
    limit: int = 0


def normalize_vin(vin: str | None) -> str | None:
    return vin.upper() if vin else vin


def new_vehicle(create: VehicleCreate) -> Vehicle:
    now = utcnow()
    return Vehicle(
        id=str(uuid.uuid4()),
        customer_id=create.customer_id,
        make=create.make,
        model=create.model,
        year=create.year,
        vin=normalize_vin(create.vin),
        license_plate=create.license_plate,
        color=create.color,
        engine=create.engine,
        notes=create.notes,
        is_active=True,
        metadata=validate_property_bag("metadata", create.metadata),
        created_at=now,
        updated_at=now,
    )
