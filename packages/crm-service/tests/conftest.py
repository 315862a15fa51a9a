"""Shared fixtures: a file-backed SQLite database per test, no Docker needed.

The pool is capped at a single connection so every unit of work reuses
the same session and must re-bind its tenant.
"""

import uuid

import pytest

from crm_service.db.engine import create_engine
from crm_service.db.schema import create_schema
from crm_service.db.store import TenantScopedStore
from crm_service.repositories.customer import CustomerRepository
from crm_service.repositories.note import CustomerNoteRepository
from crm_service.repositories.vehicle import VehicleRepository
from crm_service.services.customer import CustomerService
from crm_service.services.vehicle import VehicleService


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}"


@pytest.fixture
async def db_engine(db_url):
    engine = create_engine(db_url, pool_size=1, max_overflow=0)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine):
    return TenantScopedStore(db_engine)


@pytest.fixture
def customer_repo(store):
    return CustomerRepository(store)


@pytest.fixture
def vehicle_repo(store):
    return VehicleRepository(store)


@pytest.fixture
def note_repo(store):
    return CustomerNoteRepository(store)


@pytest.fixture
def customer_service(customer_repo, vehicle_repo, note_repo):
    return CustomerService(customer_repo, vehicle_repo, note_repo)


@pytest.fixture
def vehicle_service(vehicle_repo, customer_repo):
    return VehicleService(vehicle_repo, customer_repo)


@pytest.fixture
def tenant_a():
    return str(uuid.uuid4())


@pytest.fixture
def tenant_b():
    return str(uuid.uuid4())

