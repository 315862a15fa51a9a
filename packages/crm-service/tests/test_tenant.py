"""Tests for the tenant context carrier."""

import asyncio

import pytest

from crm_service.errors import MissingTenantError
from crm_service.tenant import TenantContext, current_tenant, require_tenant, tenant_scope


class TestTenantContext:
    def test_tenant_context_holds_id(self):
        ctx = TenantContext(tenant_id="tenant-1")
        assert ctx.tenant_id == "tenant-1"

    def test_empty_tenant_rejected(self):
        with pytest.raises(MissingTenantError):
            TenantContext(tenant_id="")

    def test_tenant_context_is_immutable(self):
        ctx = TenantContext(tenant_id="tenant-1")
        with pytest.raises(AttributeError):
            ctx.tenant_id = "tenant-2"


class TestTenantScope:
    def test_no_tenant_by_default(self):
        assert current_tenant() is None

    def test_require_tenant_without_scope_fails(self):
        with pytest.raises(MissingTenantError, match="tenant_id is required"):
            require_tenant()

    def test_scope_attaches_and_restores(self):
        with tenant_scope("tenant-1") as ctx:
            assert ctx.tenant_id == "tenant-1"
            assert require_tenant() == "tenant-1"
        assert current_tenant() is None

    def test_nested_scope_leaves_parent_untouched(self):
        with tenant_scope("outer"):
            with tenant_scope("inner"):
                assert require_tenant() == "inner"
            assert require_tenant() == "outer"

    def test_scope_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with tenant_scope("tenant-1"):
                raise RuntimeError("boom")
        assert current_tenant() is None

    async def test_concurrent_tasks_see_only_their_tenant(self):
        seen: dict[str, list[str]] = {"a": [], "b": []}

        async def call(name: str, tenant_id: str):
            with tenant_scope(tenant_id):
                for _ in range(3):
                    await asyncio.sleep(0)
                    seen[name].append(require_tenant())

        await asyncio.gather(call("a", "tenant-a"), call("b", "tenant-b"))
        assert seen["a"] == ["tenant-a"] * 3
        assert seen["b"] == ["tenant-b"] * 3
        assert current_tenant() is None
