"""
Storage contract for premium persistence.

This defines the operations the engine needs from a backend. Backends
raise ``StorageUnavailableError`` for any I/O or connection failure and
return ``None`` for absent records.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..models import Entitlement, RedemptionCode


class StorageBackend(ABC):
    """Abstract persistence for entitlements and redemption codes."""

    async def start(self) -> None:
        """Acquire connections or prepare files."""

    async def stop(self) -> None:
        """Release resources."""

    async def health_check(self) -> bool:
        """Check backend health."""
        return True

    @abstractmethod
    async def find_entitlement(self, entity_id: str) -> Optional[Entitlement]:
        """
        Find an entitlement by entity ID.

        Args:
            entity_id: Entity identifier

        Returns:
            Entitlement or None if the entity was never granted premium
        """

    @abstractmethod
    async def save_entitlement(self, entitlement: Entitlement) -> None:
        """Insert or replace the entitlement keyed by its entity ID."""

    @abstractmethod
    async def find_code(self, code: str) -> Optional[RedemptionCode]:
        """Find a redemption code, or None."""

    @abstractmethod
    async def save_code(self, code: RedemptionCode) -> None:
        """
        Create or merge a redemption code keyed by its code string.

        The caller does not need to know whether the code already exists.
        """

    @abstractmethod
    async def find_expired_entitlements(self, now: datetime) -> List[Entitlement]:
        """Entitlements flagged premium whose expiry is strictly before ``now``."""

    @abstractmethod
    async def list_all_entitlements(self) -> List[Entitlement]:
        """Full scan of entitlements."""

    @abstractmethod
    async def list_all_codes(self) -> List[RedemptionCode]:
        """Full scan of redemption codes."""
