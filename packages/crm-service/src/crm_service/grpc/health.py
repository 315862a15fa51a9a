"""Readiness reporting through the standard gRPC health service."""

from __future__ import annotations

import asyncio
import logging

from grpc_health.v1 import health, health_pb2
from sqlalchemy.ext.asyncio import AsyncEngine

from crm_service.db.engine import ping
from crm_service.grpc.codec import SERVICE_NAME

# "" is the aggregate status reported to generic health probes
REPORTED_SERVICES = ("", SERVICE_NAME)


class HealthReporter:
    """Marks the service SERVING while the database answers, NOT_SERVING otherwise."""

    def __init__(
        self,
        engine: AsyncEngine,
        servicer: health.aio.HealthServicer | None = None,
        probe_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.servicer = servicer or health.aio.HealthServicer()
        self._engine = engine
        self._probe_timeout = probe_timeout
        self._logger = logger or logging.getLogger(__name__)
        self._serving: bool | None = None

    @property
    def serving(self) -> bool:
        return bool(self._serving)

    async def refresh(self) -> bool:
        healthy = await ping(self._engine, timeout=self._probe_timeout)
        status = (
            health_pb2.HealthCheckResponse.SERVING
            if healthy
            else health_pb2.HealthCheckResponse.NOT_SERVING
        )
        for service in REPORTED_SERVICES:
            await self.servicer.set(service, status)
        if healthy != self._serving:
            level = logging.INFO if healthy else logging.WARNING
            self._logger.log(level, "Database health changed: %s", "up" if healthy else "down")
        self._serving = healthy
        return healthy

    async def run(self, interval: float, stop: asyncio.Event) -> None:
        """Refresh every *interval* seconds until *stop* is set."""
        while not stop.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def shutdown(self) -> None:
        await self.servicer.enter_graceful_shutdown()
        self._serving = False
