"""Error taxonomy shared by repositories, services and the gRPC adapter.

The transport layer is the only place these are turned into status codes.
"""

from __future__ import annotations


class CRMError(Exception):
    """Base class for all service errors."""


class NotFoundError(CRMError):
    """Entity absent or not visible under the current tenant scope."""

    def __init__(self, entity: str, identifier: str = "", message: str = "") -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} not found")


class ReferenceNotFoundError(NotFoundError):
    """A foreign reference (e.g. vehicle -> customer) does not resolve."""

    def __init__(self, entity: str, identifier: str = "") -> None:
        super().__init__(entity, identifier, f"referenced {entity} not found")


class ValidationError(CRMError):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"validation error on field '{field}': {message}")


class DuplicateError(CRMError):
    def __init__(self, entity: str, field: str, value: str = "") -> None:
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field} {value!r} already exists")


class MissingTenantError(CRMError):
    def __init__(self) -> None:
        super().__init__("tenant_id is required")


class RepositoryError(CRMError):
    """Storage failure wrapped with the operation that hit it."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        message = f"failed to {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class TenantBindingError(RepositoryError):
    """The session tenant directive could not be applied."""

    def __init__(self, cause: BaseException | None = None) -> None:
        super().__init__("bind tenant to session", cause)
