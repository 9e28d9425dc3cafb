"""
Premium entitlement package.

Grants, revokes and queries a binary "premium" entitlement for arbitrary
entities, with redeemable activation codes. It provides:

- app.engine: ``PremiumManager``, the entitlement and redemption state machine.
- app.persistence: Storage contract plus local-file and PostgreSQL backends.
- app.cache: Process-local cache for flags, statuses and codes.
- app.events: Typed publish/subscribe for premium state changes.
- app.preload: Bulk cache warming from storage.
- app.cli: Operator command line (``premium-admin``).

Guidelines:
- The engine is the only writer of entitlements and codes.
- The cache is an optimization; storage is the source of truth.
"""

from .engine import PremiumManager
from .events import (
    PremiumAdded, PremiumCodeCreated, PremiumCodeRedeemed, PremiumEvent, PremiumExtended, PremiumRemoved
)
from .models import CodeActivation, Entitlement, RedemptionCode

__all__ = [
    "PremiumManager",
    "PremiumEvent",
    "PremiumAdded",
    "PremiumRemoved",
    "PremiumCodeCreated",
    "PremiumCodeRedeemed",
    "PremiumExtended",
    "Entitlement",
    "RedemptionCode",
    "CodeActivation",
]
