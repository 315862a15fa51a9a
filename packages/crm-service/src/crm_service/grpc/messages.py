"""Pydantic request and response shapes for the CRM RPC payloads."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, JsonValue


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalStr = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]
NonEmptyStr = Annotated[str, Field(min_length=1)]
Page = Annotated[int, Field(ge=0)]


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ── Customer requests ───────────────────────────────────────────────────────


class ListCustomersRequest(WireModel):
    search: str = ""
    customer_type: str = ""
    active_only: bool = False
    page: Page = 0
    limit: int = 0
    sort_by: str = ""
    sort_order: str = ""


class GetCustomerRequest(WireModel):
    id: NonEmptyStr
    include_vehicles: bool = False
    include_notes: bool = False


class CreateCustomerRequest(WireModel):
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    customer_type: str = "individual"
    email: OptionalStr = None
    phone: OptionalStr = None
    company_name: OptionalStr = None
    tax_id: OptionalStr = None
    address: OptionalStr = None
    birthday: OptionalDate = None
    notes: OptionalStr = None
    preferences: dict[str, JsonValue] | None = None


class UpdateCustomerRequest(WireModel):
    id: NonEmptyStr
    first_name: OptionalStr = None
    last_name: OptionalStr = None
    email: OptionalStr = None
    phone: OptionalStr = None
    customer_type: OptionalStr = None
    company_name: OptionalStr = None
    tax_id: OptionalStr = None
    address: OptionalStr = None
    birthday: OptionalDate = None
    notes: OptionalStr = None
    preferences: dict[str, JsonValue] | None = None
    is_active: bool | None = None


class DeleteRequest(WireModel):
    id: NonEmptyStr


class SearchCustomersRequest(WireModel):
    query: str = ""
    search_fields: list[str] = Field(default_factory=list)
    limit: int = 0


class AddCustomerNoteRequest(WireModel):
    customer_id: NonEmptyStr
    note: NonEmptyStr
    type: str = ""


class GetCustomerHistoryRequest(WireModel):
    customer_id: NonEmptyStr
    page: Page = 0
    limit: int = 0


# ── Vehicle requests ────────────────────────────────────────────────────────


class ListVehiclesRequest(WireModel):
    customer_id: str = ""
    search: str = ""
    active_only: bool = False
    page: Page = 0
    limit: int = 0


class GetVehicleRequest(WireModel):
    id: NonEmptyStr


class CreateVehicleRequest(WireModel):
    customer_id: NonEmptyStr
    make: NonEmptyStr
    model: NonEmptyStr
    year: int
    vin: OptionalStr = None
    license_plate: OptionalStr = None
    color: OptionalStr = None
    engine: OptionalStr = None
    notes: OptionalStr = None
    metadata: dict[str, JsonValue] | None = None


class UpdateVehicleRequest(WireModel):
    id: NonEmptyStr
    make: OptionalStr = None
    model: OptionalStr = None
    year: int | None = None
    vin: OptionalStr = None
    license_plate: OptionalStr = None
    color: OptionalStr = None
    engine: OptionalStr = None
    notes: OptionalStr = None
    is_active: bool | None = None
    metadata: dict[str, JsonValue] | None = None


# ── Responses ───────────────────────────────────────────────────────────────


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class VehicleMessage(ResponseModel):
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
    is_active: bool
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    display_name: str
    created_at: datetime
    updated_at: datetime


class CustomerNoteMessage(ResponseModel):
    id: str
    customer_id: str
    staff_id: str
    staff_name: str
    note: str
    type: str
    created_at: datetime


class CustomerMessage(ResponseModel):
    id: str
    tenant_id: str
    first_name: str
    last_name: str
    full_name: str
    display_name: str
    customer_type: str
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None
    tax_id: str | None = None
    address: str | None = None
    birthday: date | None = None
    notes: str | None = None
    preferences: dict[str, JsonValue] = Field(default_factory=dict)
    is_active: bool
    created_at: datetime
    updated_at: datetime
    vehicles: list[VehicleMessage] = Field(default_factory=list)
    customer_notes: list[CustomerNoteMessage] = Field(default_factory=list)


def to_wire(model: type[ResponseModel], entity: Any) -> dict[str, Any]:
    """Render a domain entity as a JSON-compatible dict for a Struct payload."""
    return model.model_validate(entity).model_dump(mode="json")
