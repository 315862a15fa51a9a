"""gRPC CustomerService implementation.

Each RPC decodes its Struct payload into a pydantic request, calls a
domain service and encodes the result. Domain errors are turned into
status codes here and nowhere else.
"""

from __future__ import annotations

import functools
import logging
import math
from typing import Any

import grpc
from google.protobuf import struct_pb2
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from crm_service.domain.customer import CustomerCreate, CustomerFilter, CustomerSearchFilter, CustomerUpdate
from crm_service.domain.note import CustomerNoteCreate
from crm_service.domain.vehicle import VehicleCreate, VehicleFilter, VehicleUpdate
from crm_service.errors import CRMError, DuplicateError, MissingTenantError, NotFoundError, ValidationError
from crm_service.grpc import codec
from crm_service.grpc.messages import (
    AddCustomerNoteRequest,
    CreateCustomerRequest,
    CreateVehicleRequest,
    CustomerMessage,
    CustomerNoteMessage,
    DeleteRequest,
    GetCustomerHistoryRequest,
    GetCustomerRequest,
    GetVehicleRequest,
    ListCustomersRequest,
    ListVehiclesRequest,
    SearchCustomersRequest,
    UpdateCustomerRequest,
    UpdateVehicleRequest,
    VehicleMessage,
    to_wire,
)
from crm_service.services.customer import CustomerService
from crm_service.services.vehicle import VehicleService

DEFAULT_PAGE_LIMIT = 20
MAX_LIST_LIMIT = 100
MAX_SEARCH_LIMIT = 50

STAFF_ID_KEY = "x-staff-id"
STAFF_NAME_KEY = "x-staff-name"
DEFAULT_STAFF_ID = "system"
DEFAULT_STAFF_NAME = "System User"

INTERNAL_ERROR_MESSAGE = "internal server error"

METHODS = (
    "ListCustomers",
    "GetCustomer",
    "CreateCustomer",
    "UpdateCustomer",
    "DeleteCustomer",
    "SearchCustomers",
    "AddCustomerNote",
    "GetCustomerHistory",
    "ListVehicles",
    "GetVehicle",
    "CreateVehicle",
    "UpdateVehicle",
    "DeleteVehicle",
)


def _extract_metadata(context, key: str) -> str:
    for k, v in context.invocation_metadata():
        if k == key:
            return v
    return ""


def clamp_limit(limit: int, maximum: int) -> int:
    if limit <= 0:
        return DEFAULT_PAGE_LIMIT
    return min(limit, maximum)


def _describe(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "request"
    return f"invalid {field}: {error['msg']}"


def rpc(request_model: type[BaseModel]):
    """Decode the Struct request, run the handler, map domain errors to status codes."""

    def decorator(handler):
        @functools.wraps(handler)
        async def wrapper(self: CustomerServicer, request: struct_pb2.Struct, context) -> struct_pb2.Struct:
            try:
                payload = request_model.model_validate(codec.decode(request))
            except PydanticValidationError as exc:
                await context.abort(grpc.StatusCode.INVALID_ARGUMENT, _describe(exc))
                return struct_pb2.Struct()

            try:
                result = await handler(self, payload, context)
            except NotFoundError as exc:
                await context.abort(grpc.StatusCode.NOT_FOUND, str(exc))
            except (ValidationError, MissingTenantError) as exc:
                await context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(exc))
            except DuplicateError as exc:
                await context.abort(grpc.StatusCode.ALREADY_EXISTS, str(exc))
            except CRMError:
                self._logger.exception("%s failed", handler.__name__)
                await context.abort(grpc.StatusCode.INTERNAL, INTERNAL_ERROR_MESSAGE)
            else:
                return codec.encode(result)
            return struct_pb2.Struct()

        return wrapper

    return decorator


class CustomerServicer:
    """crm.v1.CustomerService handlers over Struct payloads."""

    def __init__(
        self,
        customers: CustomerService,
        vehicles: VehicleService,
        logger: logging.Logger | None = None,
    ) -> None:
        self._customers = customers
        self._vehicles = vehicles
        self._logger = logger or logging.getLogger(__name__)

    # ── Customers ───────────────────────────────────────────────────────────

    @rpc(ListCustomersRequest)
    async def ListCustomers(self, request: ListCustomersRequest, context) -> dict[str, Any]:
        limit = clamp_limit(request.limit, MAX_LIST_LIMIT)
        customers, total = await self._customers.list_customers(CustomerFilter(
            search=request.search,
            customer_type=request.customer_type,
            active_only=request.active_only,
            page=request.page,
            limit=limit,
            sort_by=request.sort_by,
            sort_order=request.sort_order,
        ))
        return {
            "customers": [to_wire(CustomerMessage, c) for c in customers],
            "total": total,
            "page": request.page or 1,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    @rpc(GetCustomerRequest)
    async def GetCustomer(self, request: GetCustomerRequest, context) -> dict[str, Any]:
        customer = await self._customers.get_customer(
            request.id, request.include_vehicles, request.include_notes
        )
        return {"customer": to_wire(CustomerMessage, customer)}

    @rpc(CreateCustomerRequest)
    async def CreateCustomer(self, request: CreateCustomerRequest, context) -> dict[str, Any]:
        customer = await self._customers.create_customer(CustomerCreate(**request.model_dump()))
        return {"customer": to_wire(CustomerMessage, customer)}

    @rpc(UpdateCustomerRequest)
    async def UpdateCustomer(self, request: UpdateCustomerRequest, context) -> dict[str, Any]:
        update = CustomerUpdate(**request.model_dump(exclude={"id"}))
        customer = await self._customers.update_customer(request.id, update)
        return {"customer": to_wire(CustomerMessage, customer)}

    @rpc(DeleteRequest)
    async def DeleteCustomer(self, request: DeleteRequest, context) -> dict[str, Any]:
        deactivated = await self._customers.delete_customer(request.id)
        return {"success": True, "deactivated": deactivated is not None}

    @rpc(SearchCustomersRequest)
    async def SearchCustomers(self, request: SearchCustomersRequest, context) -> dict[str, Any]:
        customers = await self._customers.search_customers(CustomerSearchFilter(
            query=request.query,
            search_fields=request.search_fields,
            limit=clamp_limit(request.limit, MAX_SEARCH_LIMIT),
        ))
        return {"customers": [to_wire(CustomerMessage, c) for c in customers]}

    @rpc(AddCustomerNoteRequest)
    async def AddCustomerNote(self, request: AddCustomerNoteRequest, context) -> dict[str, Any]:
        note = await self._customers.add_customer_note(CustomerNoteCreate(
            customer_id=request.customer_id,
            staff_id=_extract_metadata(context, STAFF_ID_KEY) or DEFAULT_STAFF_ID,
            staff_name=_extract_metadata(context, STAFF_NAME_KEY) or DEFAULT_STAFF_NAME,
            note=request.note,
            type=request.type,
        ))
        return {"note": to_wire(CustomerNoteMessage, note)}

    @rpc(GetCustomerHistoryRequest)
    async def GetCustomerHistory(self, request: GetCustomerHistoryRequest, context) -> dict[str, Any]:
        # Purchase and appointment history lives in other services; nothing to report yet.
        return {"customer_id": request.customer_id, "entries": [], "total": 0}

    # ── Vehicles ────────────────────────────────────────────────────────────

    @rpc(ListVehiclesRequest)
    async def ListVehicles(self, request: ListVehiclesRequest, context) -> dict[str, Any]:
        limit = clamp_limit(request.limit, MAX_LIST_LIMIT)
        vehicles, total = await self._vehicles.list_vehicles(VehicleFilter(
            customer_id=request.customer_id,
            search=request.search,
            active_only=request.active_only,
            page=request.page,
            limit=limit,
        ))
        return {
            "vehicles": [to_wire(VehicleMessage, v) for v in vehicles],
            "total": total,
            "page": request.page or 1,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    @rpc(GetVehicleRequest)
    async def GetVehicle(self, request: GetVehicleRequest, context) -> dict[str, Any]:
        vehicle = await self._vehicles.get_vehicle(request.id)
        return {"vehicle": to_wire(VehicleMessage, vehicle)}

    @rpc(CreateVehicleRequest)
    async def CreateVehicle(self, request: CreateVehicleRequest, context) -> dict[str, Any]:
        vehicle = await self._vehicles.create_vehicle(VehicleCreate(**request.model_dump()))
        return {"vehicle": to_wire(VehicleMessage, vehicle)}

    @rpc(UpdateVehicleRequest)
    async def UpdateVehicle(self, request: UpdateVehicleRequest, context) -> dict[str, Any]:
        update = VehicleUpdate(**request.model_dump(exclude={"id"}))
        vehicle = await self._vehicles.update_vehicle(request.id, update)
        return {"vehicle": to_wire(VehicleMessage, vehicle)}

    @rpc(DeleteRequest)
    async def DeleteVehicle(self, request: DeleteRequest, context) -> dict[str, Any]:
        await self._vehicles.delete_vehicle(request.id)
        return {"success": True}


def generic_handler(servicer: CustomerServicer) -> grpc.GenericRpcHandler:
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            getattr(servicer, name),
            request_deserializer=codec.deserialize,
            response_serializer=codec.serialize,
        )
        for name in METHODS
    }
    return grpc.method_handlers_generic_handler(codec.SERVICE_NAME, handlers)
