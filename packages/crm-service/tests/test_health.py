"""Tests for database-backed health reporting."""

import asyncio

from grpc_health.v1 import health_pb2

from crm_service.db.engine import create_engine, ping
from crm_service.grpc.codec import SERVICE_NAME
from crm_service.grpc.health import HealthReporter


class RecordingHealthServicer:
    def __init__(self):
        self.statuses = {}
        self.shut_down = False

    async def set(self, service, status):
        self.statuses[service] = status

    async def enter_graceful_shutdown(self):
        self.shut_down = True


class TestPing:
    async def test_ping_healthy(self, db_engine):
        assert await ping(db_engine, timeout=5.0)

    async def test_ping_unreachable(self):
        engine = create_engine("sqlite+aiosqlite:////nonexistent-dir/crm.db")
        try:
            assert not await ping(engine, timeout=5.0)
        finally:
            await engine.dispose()


class TestHealthReporter:
    async def test_reports_serving(self, db_engine):
        recorder = RecordingHealthServicer()
        reporter = HealthReporter(db_engine, servicer=recorder)
        assert await reporter.refresh()
        assert reporter.serving
        assert recorder.statuses == {
            "": health_pb2.HealthCheckResponse.SERVING,
            SERVICE_NAME: health_pb2.HealthCheckResponse.SERVING,
        }

    async def test_reports_not_serving(self):
        engine = create_engine("sqlite+aiosqlite:////nonexistent-dir/crm.db")
        recorder = RecordingHealthServicer()
        try:
            reporter = HealthReporter(engine, servicer=recorder)
            assert not await reporter.refresh()
        finally:
            await engine.dispose()
        assert not reporter.serving
        assert recorder.statuses[SERVICE_NAME] == health_pb2.HealthCheckResponse.NOT_SERVING

    async def test_run_stops_on_event(self, db_engine):
        recorder = RecordingHealthServicer()
        reporter = HealthReporter(db_engine, servicer=recorder)
        stop = asyncio.Event()
        task = asyncio.create_task(reporter.run(0.01, stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert reporter.serving

    async def test_shutdown(self, db_engine):
        recorder = RecordingHealthServicer()
        reporter = HealthReporter(db_engine, servicer=recorder)
        await reporter.refresh()
        await reporter.shutdown()
        assert recorder.shut_down
        assert not reporter.serving
