"""Tests for CustomerRepository against SQLite with emulated session settings."""

import pytest
from sqlalchemy import event

from crm_service.domain.customer import CustomerCreate, CustomerFilter, CustomerSearchFilter, new_customer
from crm_service.errors import DuplicateError, MissingTenantError, NotFoundError
from crm_service.tenant import tenant_scope


def customer(**overrides):
    fields = dict(first_name="Ann", last_name="Smith")
    fields.update(overrides)
    return new_customer(CustomerCreate(**fields))


class TestCustomerCrud:
    async def test_create_and_get(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            created = await customer_repo.create(customer(email="ann@example.com", preferences={"vip": True}))
            fetched = await customer_repo.get_by_id(created.id)
        assert fetched.tenant_id == tenant_a
        assert fetched.email == "ann@example.com"
        assert fetched.preferences == {"vip": True}
        assert fetched.created_at.tzinfo is not None

    async def test_unset_optionals_round_trip_as_none(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            created = await customer_repo.create(customer())
            fetched = await customer_repo.get_by_id(created.id)
        for field in ("email", "phone", "company_name", "tax_id", "address", "birthday", "notes"):
            assert getattr(fetched, field) is None, field

    async def test_update_missing_customer_is_not_found(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            with pytest.raises(NotFoundError, match="customer not found"):
                await customer_repo.update(customer())

    async def test_delete_missing_customer_is_not_found(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            with pytest.raises(NotFoundError):
                await customer_repo.delete("no-such-id")

    async def test_lookup_by_email_and_tax_id(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            created = await customer_repo.create(customer(email="ann@example.com", tax_id="TAX-1"))
            assert (await customer_repo.get_by_email("ann@example.com")).id == created.id
            assert (await customer_repo.get_by_tax_id("TAX-1")).id == created.id
            assert await customer_repo.exists_by_email("ann@example.com")
            assert not await customer_repo.exists_by_email("ann@example.com", exclude_id=created.id)
            assert await customer_repo.exists_by_tax_id("TAX-1")


class TestTenantIsolation:
    async def test_other_tenant_cannot_read_by_id(self, customer_repo, tenant_a, tenant_b):
        with tenant_scope(tenant_a):
            created = await customer_repo.create(customer(email="ann@example.com"))
        with tenant_scope(tenant_b):
            with pytest.raises(NotFoundError):
                await customer_repo.get_by_id(created.id)
            with pytest.raises(NotFoundError):
                await customer_repo.get_by_email("ann@example.com")
            items, total = await customer_repo.list(CustomerFilter())
            assert items == [] and total == 0
            assert await customer_repo.search(CustomerSearchFilter(query="Ann")) == []

    async def test_other_tenant_cannot_update_or_delete(self, customer_repo, tenant_a, tenant_b):
        with tenant_scope(tenant_a):
            created = await customer_repo.create(customer())
        with tenant_scope(tenant_b):
            created.first_name = "Mallory"
            with pytest.raises(NotFoundError):
                await customer_repo.update(created)
            with pytest.raises(NotFoundError):
                await customer_repo.delete(created.id)
        with tenant_scope(tenant_a):
            assert (await customer_repo.get_by_id(created.id)).first_name == "Ann"

    async def test_missing_tenant_fails_before_sql(self, db_engine, customer_repo):
        statements = []
        event.listen(
            db_engine.sync_engine, "before_cursor_execute",
            lambda conn, cursor, statement, *args: statements.append(statement),
        )
        with pytest.raises(MissingTenantError):
            await customer_repo.get_by_id("any")
        with pytest.raises(MissingTenantError):
            await customer_repo.list(CustomerFilter())
        with pytest.raises(MissingTenantError):
            await customer_repo.create(customer())
        with pytest.raises(MissingTenantError):
            await customer_repo.search(CustomerSearchFilter(query=""))
        with pytest.raises(MissingTenantError):
            await customer_repo.search(CustomerSearchFilter(query="Ann"))
        assert statements == []


class TestCustomerUniqueness:
    async def test_duplicate_email_in_same_tenant_rejected_by_constraint(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(email="ann@example.com"))
            with pytest.raises(DuplicateError) as exc_info:
                await customer_repo.create(customer(first_name="Other", email="ann@example.com"))
        assert exc_info.value.field == "email"

    async def test_duplicate_tax_id_rejected_by_constraint(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(tax_id="TAX-1"))
            with pytest.raises(DuplicateError) as exc_info:
                await customer_repo.create(customer(tax_id="TAX-1"))
        assert exc_info.value.field == "tax_id"

    async def test_same_email_allowed_in_other_tenant(self, customer_repo, tenant_a, tenant_b):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(email="ann@example.com"))
        with tenant_scope(tenant_b):
            await customer_repo.create(customer(email="ann@example.com"))
            assert await customer_repo.exists_by_email("ann@example.com")


class TestCustomerListing:
    async def test_second_page_of_25(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            for i in range(1, 26):
                await customer_repo.create(customer(first_name=f"Customer{i:02d}", last_name="Test"))
            items, total = await customer_repo.list(CustomerFilter(page=2, limit=10, sort_by="name"))
        assert total == 25
        assert [c.first_name for c in items] == [f"Customer{i:02d}" for i in range(11, 21)]

    async def test_default_limit_is_50(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            for i in range(55):
                await customer_repo.create(customer(first_name=f"C{i:02d}"))
            items, total = await customer_repo.list(CustomerFilter(limit=0))
        assert total == 55
        assert len(items) == 50

    async def test_filters_and_sort(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(first_name="Zed", customer_type="business", company_name="Zeta Corp"))
            await customer_repo.create(customer(first_name="Amy", customer_type="business", company_name="Alpha Inc"))
            inactive = customer(first_name="Old")
            inactive.is_active = False
            await customer_repo.create(inactive)

            businesses, total = await customer_repo.list(CustomerFilter(
                customer_type="business", sort_by="company_name", sort_order="desc",
            ))
            assert total == 2
            assert [c.company_name for c in businesses] == ["Zeta Corp", "Alpha Inc"]

            active, total = await customer_repo.list(CustomerFilter(active_only=True))
            assert total == 2
            assert "Old" not in {c.first_name for c in active}

            matched, total = await customer_repo.list(CustomerFilter(search="ALPHA"))
            assert [c.first_name for c in matched] == ["Amy"]

    async def test_search_ranks_name_matches_first(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(first_name="Zoe", last_name="Park", email="smith@example.com"))
            await customer_repo.create(customer(first_name="Bill", last_name="Smith"))
            gone = customer(first_name="Smithy", last_name="Gone")
            gone.is_active = False
            await customer_repo.create(gone)

            results = await customer_repo.search(CustomerSearchFilter(query="smith"))
        assert [c.first_name for c in results] == ["Bill", "Zoe"]

    async def test_search_empty_query_returns_nothing(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer())
            assert await customer_repo.search(CustomerSearchFilter(query="")) == []
            assert await customer_repo.search(CustomerSearchFilter(query="Ann", search_fields=["unknown"])) == []

    async def test_search_limited_to_fields_and_count(self, customer_repo, tenant_a):
        with tenant_scope(tenant_a):
            await customer_repo.create(customer(first_name="Ann", tax_id="TAX-ANN"))
            await customer_repo.create(customer(first_name="Anna", phone="555-0100"))
            by_tax = await customer_repo.search(CustomerSearchFilter(query="tax-ann", search_fields=["tax_id"]))
            limited = await customer_repo.search(CustomerSearchFilter(query="ann", limit=1))
        assert [c.first_name for c in by_tax] == ["Ann"]
        assert len(limited) == 1
