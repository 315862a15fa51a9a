"""gRPC server lifecycle: wiring, health reporting and graceful shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass

from grpc import aio as grpc_aio
from grpc_health.v1 import health_pb2_grpc
from sqlalchemy.ext.asyncio import AsyncEngine

from crm_service.config import ServiceConfig
from crm_service.db.engine import create_engine
from crm_service.db.schema import create_schema
from crm_service.db.store import TenantScopedStore
from crm_service.grpc.health import HealthReporter
from crm_service.grpc.interceptors import default_interceptors
from crm_service.grpc.servicer import CustomerServicer, generic_handler
from crm_service.log import setup_logging
from crm_service.repositories.customer import CustomerRepository
from crm_service.repositories.note import CustomerNoteRepository
from crm_service.repositories.vehicle import VehicleRepository
from crm_service.services.customer import CustomerService
from crm_service.services.vehicle import VehicleService

logger = logging.getLogger(__name__)


@dataclass
class CRMServer:
    server: grpc_aio.Server
    health: HealthReporter
    servicer: CustomerServicer
    port: int


def build_servicer(engine: AsyncEngine) -> CustomerServicer:
    """store -> repositories -> services -> servicer, each with its own logger."""
    store = TenantScopedStore(engine, logging.getLogger("crm_service.db.store"))
    customers = CustomerRepository(store, logging.getLogger("crm_service.repositories.customer"))
    vehicles = VehicleRepository(store, logging.getLogger("crm_service.repositories.vehicle"))
    notes = CustomerNoteRepository(store, logging.getLogger("crm_service.repositories.note"))
    return CustomerServicer(
        CustomerService(customers, vehicles, notes, logging.getLogger("crm_service.services.customer")),
        VehicleService(vehicles, customers, logging.getLogger("crm_service.services.vehicle")),
        logging.getLogger("crm_service.grpc.servicer"),
    )


def create_grpc_server(config: ServiceConfig, engine: AsyncEngine) -> CRMServer:
    server = grpc_aio.server(
        interceptors=default_interceptors(logging.getLogger("crm_service.grpc")),
        maximum_concurrent_rpcs=config.grpc_max_concurrent_rpcs,
    )

    servicer = build_servicer(engine)
    server.add_generic_rpc_handlers((generic_handler(servicer),))

    reporter = HealthReporter(
        engine,
        probe_timeout=config.health_probe_timeout_seconds,
        logger=logging.getLogger("crm_service.grpc.health"),
    )
    health_pb2_grpc.add_HealthServicer_to_server(reporter.servicer, server)

    port = server.add_insecure_port(config.grpc_address)
    return CRMServer(server=server, health=reporter, servicer=servicer, port=port)


async def serve(config: ServiceConfig | None = None) -> None:
    config = config or ServiceConfig()
    setup_logging(config.log_level, config.log_json)

    engine = create_engine(
        config.database_url,
        echo=config.db_echo,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_recycle=config.db_pool_recycle_seconds,
    )
    await create_schema(engine)

    crm = create_grpc_server(config, engine)
    await crm.server.start()
    logger.info("gRPC server listening on %s (%s)", config.grpc_address, config.environment)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    health_task = asyncio.create_task(crm.health.run(config.health_refresh_interval_seconds, stop))
    try:
        await stop.wait()
        logger.info("Shutting down, grace period %.1fs", config.shutdown_grace_seconds)
        await crm.health.shutdown()
        await crm.server.stop(config.shutdown_grace_seconds)
    finally:
        stop.set()
        await health_task
        await engine.dispose()
        logger.info("Server stopped")


def main() -> None:
    asyncio.run(serve())
