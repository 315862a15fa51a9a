"""Storage layer: engine, models, schema and the tenant-scoped store."""

from crm_service.db.engine import create_engine, ping
from crm_service.db.schema import create_schema
from crm_service.db.store import TENANT_SETTING, TenantScopedStore

__all__ = [
    "TENANT_SETTING",
    "TenantScopedStore",
    "create_engine",
    "create_schema",
    "ping",
]
