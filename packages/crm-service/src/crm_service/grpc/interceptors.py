"""Server interceptors, outermost first: recovery, logging, tenant.

Each one rewraps the unary-unary behavior of the handler it receives, so
the chain composes as recovery(logging(tenant(handler))).
"""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Awaitable, Callable

import grpc
from grpc import aio as grpc_aio

from crm_service.grpc.servicer import INTERNAL_ERROR_MESSAGE
from crm_service.tenant import tenant_scope

TENANT_METADATA_KEY = "x-tenant-id"
HEALTH_SERVICE_PREFIX = "/grpc.health.v1.Health/"

Behavior = Callable[[object, grpc_aio.ServicerContext], Awaitable[object]]


def _extract_metadata(context, key: str) -> str:
    for k, v in context.invocation_metadata() or ():
        if k == key:
            return v
    return ""


def _status_name(context) -> str:
    code = context.code()
    return code.name if isinstance(code, grpc.StatusCode) else "OK"


class _UnaryInterceptor(grpc_aio.ServerInterceptor, metaclass=abc.ABCMeta):
    """Base for interceptors that wrap unary-unary behaviors only."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    async def intercept_service(self, continuation, handler_call_details):
        handler = await continuation(handler_call_details)
        if handler is None or handler.unary_unary is None:
            return handler
        if not self.applies_to(handler_call_details.method):
            return handler
        return grpc.unary_unary_rpc_method_handler(
            self.wrap(handler.unary_unary, handler_call_details.method),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )

    def applies_to(self, method: str) -> bool:
        return True

    @abc.abstractmethod
    def wrap(self, behavior: Behavior, method: str) -> Behavior:
        """Return *behavior* wrapped for *method*."""


class RecoveryInterceptor(_UnaryInterceptor):
    """Contains unexpected failures to the call that raised them.

    Callers get INTERNAL with a generic message; the traceback goes only
    to the operator log.
    """

    def wrap(self, behavior: Behavior, method: str) -> Behavior:
        async def recovered(request, context):
            try:
                return await behavior(request, context)
            except grpc_aio.AbortError:
                raise
            except Exception:
                self._logger.exception("Unhandled error in %s", method, extra={"method": method})
                await context.abort(grpc.StatusCode.INTERNAL, INTERNAL_ERROR_MESSAGE)

        return recovered


class LoggingInterceptor(_UnaryInterceptor):
    def wrap(self, behavior: Behavior, method: str) -> Behavior:
        async def logged(request, context):
            started = time.monotonic()
            code = "OK"
            try:
                return await behavior(request, context)
            except grpc_aio.AbortError:
                code = _status_name(context)
                raise
            except Exception:
                code = grpc.StatusCode.INTERNAL.name
                raise
            finally:
                duration_ms = round((time.monotonic() - started) * 1000, 2)
                extra = {
                    "method": method,
                    "tenant_id": _extract_metadata(context, TENANT_METADATA_KEY) or "-",
                    "duration_ms": duration_ms,
                    "code": code,
                }
                level = logging.INFO if code == "OK" else logging.WARNING
                self._logger.log(level, "%s %s %.2fms", method, code, duration_ms, extra=extra)

        return logged


class TenantInterceptor(_UnaryInterceptor):
    """Binds x-tenant-id to the call before the handler runs.

    A missing or empty tenant is rejected with INVALID_ARGUMENT; the
    handler never starts. Health checks carry no tenant and are exempt.
    """

    def applies_to(self, method: str) -> bool:
        return not method.startswith(HEALTH_SERVICE_PREFIX)

    def wrap(self, behavior: Behavior, method: str) -> Behavior:
        async def scoped(request, context):
            tenant_id = _extract_metadata(context, TENANT_METADATA_KEY).strip()
            if not tenant_id:
                self._logger.warning("Rejected call without tenant", extra={"method": method})
                await context.abort(grpc.StatusCode.INVALID_ARGUMENT, "tenant_id is required")
            with tenant_scope(tenant_id):
                return await behavior(request, context)

        return scoped


def default_interceptors(logger: logging.Logger | None = None) -> list[grpc_aio.ServerInterceptor]:
    return [
        RecoveryInterceptor(logger),
        LoggingInterceptor(logger),
        TenantInterceptor(logger),
    ]
