"""Read-only lookups the pipeline depends on, and the entitlement TTL cache."""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from farmgate.authz.catalog import PlanAddOns, plan_features, plan_modules
from farmgate.authz.principal import OrganizationSnapshot
from farmgate.types import PlanTier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SubscriptionEntitlement:
    """Modules and features an organization's active subscription grants."""

    organization_id: str
    plan_tier: PlanTier
    module_flags: frozenset[str] = field(default_factory=frozenset)
    feature_flags: frozenset[str] = field(default_factory=frozenset)

    def grants(self, feature: str) -> bool:
        return feature in self.module_flags or feature in self.feature_flags


def build_entitlement(
    organization_id: str,
    tier: PlanTier | str,
    add_ons: PlanAddOns | None = None,
    extra_modules: Iterable[str] = (),
) -> SubscriptionEntitlement:
    """Derive an entitlement from a plan tier, its add-ons and per-org overrides."""
    add_ons = add_ons or PlanAddOns()
    try:
        resolved_tier = PlanTier(str(tier).upper())
    except ValueError:
        resolved_tier = PlanTier.FREE
    return SubscriptionEntitlement(
        organization_id=organization_id,
        plan_tier=resolved_tier,
        module_flags=plan_modules(resolved_tier) | add_ons.modules() | frozenset(extra_modules),
        feature_flags=plan_features(resolved_tier) | add_ons.features(),
    )


class OrganizationDirectory(Protocol):
    """Looks up organization snapshots. Raises LookupUnavailableError on backend failure."""

    async def get(self, org_id: str) -> OrganizationSnapshot | None: ...

    async def list_selectable(self) -> list[OrganizationSnapshot]: ...


class EntitlementLookup(Protocol):
    """Resolves an organization's active subscription entitlement.

    Returns None when the organization has no active subscription record.
    Raises LookupUnavailableError on backend failure.
    """

    async def get_entitlement(self, org_id: str) -> SubscriptionEntitlement | None: ...


class CachedEntitlementLookup:
    """Wraps an EntitlementLookup with a short-lived per-organization cache.

    Entries are advisory: they expire after ``ttl_seconds`` or when
    ``invalidate`` is called after an organization or subscription changes.
    Expired entries are lazily cleaned on every lookup. Errors are never cached.
    """

    def __init__(self, inner: EntitlementLookup, ttl_seconds: float = 60) -> None:
        self._inner = inner
        self._ttl = ttl_seconds
        # org_id -> (entitlement or None, expires_at)
        self._store: dict[str, tuple[SubscriptionEntitlement | None, float]] = {}

    async def get_entitlement(self, org_id: str) -> SubscriptionEntitlement | None:
        self._cleanup()
        entry = self._store.get(org_id)
        if entry is not None:
            logger.debug("entitlement_cache_hit", org_id=org_id)
            return entry[0]

        entitlement = await self._inner.get_entitlement(org_id)
        self._store[org_id] = (entitlement, time.time() + self._ttl)
        return entitlement

    def invalidate(self, org_id: str | None = None) -> None:
        """Drop one organization's entry, or every entry when org_id is None."""
        if org_id is None:
            self._store.clear()
        else:
            self._store.pop(org_id, None)
        logger.debug("entitlement_cache_invalidated", org_id=org_id)

    def _cleanup(self) -> None:
        """Remove expired entries."""
        now = time.time()
        expired = [k for k, (_, exp) in self._store.items() if now > exp]
        for k in expired:
            del self._store[k]
