"""Shared value helpers for the domain model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import JsonValue, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from crm_service.errors import ValidationError

# preferences / metadata: str | int | float | bool | None | list | nested dict
PropertyBag = dict[str, JsonValue]

_property_bag = TypeAdapter(PropertyBag)
_json_value = TypeAdapter(JsonValue)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_property_bag(field: str, value: Any) -> PropertyBag:
    """Coerce *value* into a JSON-compatible mapping or raise ValidationError."""
    if value is None:
        return {}
    try:
        return _property_bag.validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(field, "must be a mapping of JSON-compatible values") from exc


def validate_json_value(field: str, value: Any) -> JsonValue:
    try:
        return _json_value.validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(field, "must be a JSON-compatible value") from exc


def check_length(field: str, value: str | None, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise ValidationError(field, f"must be at most {max_length} characters")
