"""Multi-tenant configuration helpers."""

from __future__ import annotations

from typing import Any

from sporeops.config.schema import MultiTenantConfig, TenantConfig


class TenantManager:
    def __init__(self, config: MultiTenantConfig | None = None) -> None:
        self.config = config or MultiTenantConfig()

    def resolve_tenant(self, requested_tenant: str | None = None) -> TenantConfig:
        requested = (requested_tenant or self.config.default_tenant).strip() or self.config.default_tenant
        if not self.config.enabled:
            return TenantConfig(tenant_id=requested, display_name=requested)
        for tenant in self.config.tenants:
            if tenant.tenant_id == requested and tenant.enabled:
                return tenant
        for tenant in self.config.tenants:
            if tenant.tenant_id == self.config.default_tenant and tenant.enabled:
                return tenant
        return TenantConfig(tenant_id=self.config.default_tenant, display_name=self.config.default_tenant)

    def is_known(self, tenant_id: str) -> bool:
        if not self.config.enabled:
            return True
        return any(tenant.tenant_id == tenant_id and tenant.enabled for tenant in self.config.tenants)

    def federation_for(self, tenant_id: str) -> str | None:
        for tenant in self.config.tenants:
            if tenant.tenant_id == tenant_id:
                return tenant.federation_id
        return None

    def snapshot(self) -> dict[str, Any]:
        return {
            "enabled": self.config.enabled,
            "default_tenant": self.config.default_tenant,
            "tenants": [
                {
                    "id": tenant.tenant_id,
                    "display_name": tenant.display_name,
                    "enabled": tenant.enabled,
                    "federation_id": tenant.federation_id,
                    "facilities": tenant.facilities,
                    "tags": tenant.tags,
                }
                for tenant in self.config.tenants
            ],
        }
