# src/govflow/governance/tenants.py
"""
Tenant directory.

Holds per-tenant configuration (resource limits, permission grants,
isolation level, compliance flags).  State is in-memory and shared; a
multi-process deployment must externalize it.

The ``default`` tenant is always present after construction unless
``create_default=False`` is passed.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import TenantError, TenantExistsError, TenantNotFoundError
from ..models import ResourceLimits, Tenant, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TENANT_ID = "default"


class TenantDirectory:
    """Thread-safe registry of :class:`~govflow.models.Tenant` records."""

    def __init__(
        self,
        default_tenant_id: str = DEFAULT_TENANT_ID,
        default_limits: Optional[ResourceLimits] = None,
        create_default: bool = True,
    ):
        self._tenants: Dict[str, Tenant] = {}
        self._lock = threading.RLock()
        self._delete_callbacks: List[Callable[[str], None]] = []
        self.default_tenant_id = default_tenant_id
        if create_default:
            self._tenants[default_tenant_id] = Tenant(
                id=default_tenant_id,
                name="Default Tenant",
                resource_limits=default_limits or ResourceLimits(),
            )

    def on_delete(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the tenant ID after deletion."""
        self._delete_callbacks.append(callback)

    def create_tenant(self, tenant: Tenant) -> Tenant:
        with self._lock:
            if tenant.id in self._tenants:
                raise TenantExistsError(tenant.id)
            self._tenants[tenant.id] = tenant
        logger.info(f"Created tenant '{tenant.id}'")
        return tenant

    def get_tenant(self, tenant_id: str) -> Tenant:
        with self._lock:
            tenant = self._tenants.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def find_tenant(self, tenant_id: str) -> Optional[Tenant]:
        with self._lock:
            return self._tenants.get(tenant_id)

    def update_tenant(self, tenant_id: str, updates: Dict[str, Any]) -> Tenant:
        """
        Apply a partial update and return the new record.

        Nested sections (``resource_limits``, ``compliance``) are merged
        field by field; ``id`` and ``created_at`` cannot change.
        """
        with self._lock:
            current = self.get_tenant(tenant_id)
            data = current.model_dump()
            for key, value in updates.items():
                if key in ("id", "created_at"):
                    raise TenantError(f"Field '{key}' of tenant '{tenant_id}' is immutable.")
                if isinstance(value, dict) and isinstance(data.get(key), dict):
                    data[key] = {**data[key], **value}
                else:
                    data[key] = value
            data["updated_at"] = utcnow()
            try:
                updated = Tenant.model_validate(data)
            except ValidationError as e:
                raise TenantError(f"Invalid update for tenant '{tenant_id}': {e}")
            self._tenants[tenant_id] = updated
        logger.info(f"Updated tenant '{tenant_id}': {sorted(updates)}")
        return updated

    def delete_tenant(self, tenant_id: str) -> Tenant:
        """Remove a tenant and notify listeners. Audit history is not touched."""
        with self._lock:
            tenant = self._tenants.pop(tenant_id, None)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        for callback in self._delete_callbacks:
            callback(tenant_id)
        logger.info(f"Deleted tenant '{tenant_id}'")
        return tenant

    def list_tenants(self) -> List[Tenant]:
        with self._lock:
            return list(self._tenants.values())

    def has_permission(self, tenant_id: str, resource: str, action: str) -> bool:
        tenant = self.find_tenant(tenant_id)
        return tenant is not None and tenant.has_permission(resource, action)

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._tenants

    def __len__(self) -> int:
        with self._lock:
            return len(self._tenants)
