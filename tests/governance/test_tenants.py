# tests/governance/test_tenants.py
"""Tests for the TenantDirectory registry."""

import pytest

from govflow.exceptions import TenantError, TenantExistsError, TenantNotFoundError
from govflow.governance import TenantDirectory
from govflow.models import ResourceLimits, Tenant


class TestTenantDirectory:
    """CRUD, permissions and delete notifications."""

    def test_default_tenant_present(self):
        tenants = TenantDirectory()
        assert "default" in tenants
        assert len(tenants) == 1

    def test_default_limits_applied(self):
        tenants = TenantDirectory(default_limits=ResourceLimits(max_calls_per_hour=5))
        assert tenants.get_tenant("default").resource_limits.max_calls_per_hour == 5

    def test_without_default(self):
        assert len(TenantDirectory(create_default=False)) == 0

    def test_create_and_get(self):
        tenants = TenantDirectory()
        tenants.create_tenant(Tenant(id="acme", name="Acme"))
        assert tenants.get_tenant("acme").name == "Acme"
        assert {t.id for t in tenants.list_tenants()} == {"default", "acme"}

    def test_create_duplicate(self):
        tenants = TenantDirectory()
        with pytest.raises(TenantExistsError):
            tenants.create_tenant(Tenant(id="default"))

    def test_get_missing(self):
        with pytest.raises(TenantNotFoundError):
            TenantDirectory().get_tenant("ghost")
        assert TenantDirectory().find_tenant("ghost") is None

    def test_update_merges_nested_sections(self):
        """Nested sections are merged field by field."""
        tenants = TenantDirectory()
        tenants.create_tenant(Tenant(id="acme"))
        updated = tenants.update_tenant("acme", {"resource_limits": {"max_tokens_per_hour": 50}, "name": "New"})
        assert updated.name == "New"
        assert updated.resource_limits.max_tokens_per_hour == 50
        assert updated.resource_limits.max_calls_per_hour == 1000
        assert updated.updated_at >= updated.created_at

    def test_update_immutable_field(self):
        tenants = TenantDirectory()
        with pytest.raises(TenantError):
            tenants.update_tenant("default", {"id": "other"})

    def test_update_invalid_value(self):
        tenants = TenantDirectory()
        with pytest.raises(TenantError):
            tenants.update_tenant("default", {"resource_limits": {"max_users": -1}})

    def test_delete_notifies_listeners(self):
        tenants = TenantDirectory()
        tenants.create_tenant(Tenant(id="acme"))
        deleted = []
        tenants.on_delete(deleted.append)
        tenants.delete_tenant("acme")
        assert deleted == ["acme"]
        assert "acme" not in tenants

    def test_delete_missing(self):
        with pytest.raises(TenantNotFoundError):
            TenantDirectory().delete_tenant("ghost")

    def test_has_permission(self):
        tenants = TenantDirectory()
        assert tenants.has_permission("default", "tests", "create")
        assert not tenants.has_permission("default", "results", "create")
        assert not tenants.has_permission("ghost", "tests", "read")
