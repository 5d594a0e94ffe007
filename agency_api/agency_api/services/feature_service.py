"""Service layer for the maintenance feature catalog.

Features are agency-wide labels ("Security patching", "Uptime
monitoring") that describe what a plan covers.  Each tenant is assigned a
subset of them.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from agency_core.maintenance.errors import FeatureValidationError
from agency_core.state.repository import (
    MaintenanceFeatureRepository,
    TenantMaintenanceFeatureRepository,
    TenantRepository,
)
from agency_core.state.tables import MaintenanceFeatureTable

logger = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(label: str) -> str:
    """Lowercase *label* and collapse non-alphanumeric runs into single dashes."""
    return _NON_SLUG.sub("-", label.strip().lower()).strip("-")


class FeatureService:
    """Catalog management and tenant feature assignment.

    Parameters
    ----------
    session:
        Active database session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._feature_repo = MaintenanceFeatureRepository(session)
        self._tenant_repo = TenantRepository(session)

    async def list_active_features(self) -> list[dict[str, Any]]:
        """Active catalog features ordered by label."""
        features = await self._feature_repo.list_active()
        return [self._feature_to_dict(f) for f in features]

    async def create_feature(self, label: str, description: str | None = None) -> dict[str, Any]:
        """Add a feature to the catalog under a unique slug key.

        The label is trimmed; a blank description is stored as ``NULL``.
        """
        key = await self._generate_unique_key(label)
        feature = await self._feature_repo.create(
            key=key,
            label=label.strip(),
            description=(description or "").strip() or None,
        )
        logger.info("Created maintenance feature: key=%s id=%s", key, feature.id)
        return self._feature_to_dict(feature)

    async def get_tenant_feature_selection(self, tenant_id: str) -> dict[str, Any]:
        """Return ``{tenant_id, selected_feature_ids, features}`` for a tenant.

        Raises
        ------
        TenantNotFoundError
            If the tenant does not exist.
        """
        await self._tenant_repo.get_or_raise(tenant_id)
        assigned = await TenantMaintenanceFeatureRepository(self._session, tenant_id).list_assigned()
        return {
            "tenant_id": tenant_id,
            "selected_feature_ids": [f.id for f in assigned],
            "features": [self._feature_to_dict(f) for f in assigned],
        }

    async def assign_features_to_tenant(self, tenant_id: str, feature_ids: list[str]) -> dict[str, Any]:
        """Replace the tenant's assigned features with *feature_ids*.

        Duplicate ids are collapsed.  Every id is checked before anything is
        written, so an unknown id leaves the existing assignment untouched.

        Raises
        ------
        TenantNotFoundError
            If the tenant does not exist.
        FeatureValidationError
            If any id is not in the catalog.
        """
        await self._tenant_repo.get_or_raise(tenant_id)
        unique_ids = list(dict.fromkeys(feature_ids))
        existing = await self._feature_repo.existing_ids(unique_ids)
        missing = [fid for fid in unique_ids if fid not in existing]
        if missing:
            raise FeatureValidationError(missing)

        await TenantMaintenanceFeatureRepository(self._session, tenant_id).replace(unique_ids)
        logger.info("Assigned maintenance features: tenant=%s count=%d", tenant_id, len(unique_ids))
        return await self.get_tenant_feature_selection(tenant_id)

    async def create_feature_and_assign(
        self,
        tenant_id: str,
        label: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Create a catalog feature and add it to the tenant's assignment.

        Returns ``{feature, selection}``.
        """
        await self._tenant_repo.get_or_raise(tenant_id)
        feature = await self.create_feature(label, description)
        await TenantMaintenanceFeatureRepository(self._session, tenant_id).add(feature["id"])
        selection = await self.get_tenant_feature_selection(tenant_id)
        return {"feature": feature, "selection": selection}

    async def list_features_for_tenant(self, tenant_id: str) -> list[dict[str, Any]]:
        """Active features assigned to the tenant, as ``{id, label, description}``."""
        assigned = await TenantMaintenanceFeatureRepository(self._session, tenant_id).list_assigned(active_only=True)
        return [{"id": f.id, "label": f.label, "description": f.description} for f in assigned]

    async def _generate_unique_key(self, label: str) -> str:
        base_key = slugify(label) or f"feature-{int(time.time() * 1000)}"
        candidate = base_key
        counter = 1
        while await self._feature_repo.key_exists(candidate):
            candidate = f"{base_key}-{counter}"
            counter += 1
        return candidate

    @staticmethod
    def _feature_to_dict(feature: MaintenanceFeatureTable) -> dict[str, Any]:
        return {
            "id": feature.id,
            "key": feature.key,
            "label": feature.label,
            "description": feature.description,
            "is_active": feature.is_active,
        }
