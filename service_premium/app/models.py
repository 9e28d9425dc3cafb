"""
Premium data models.
"""

from typing import List, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PremiumModel(BaseModel):
    """Base model; stored documents use camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        """Serialize to the stored JSON document shape."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict):
        """Build a model from a stored JSON document."""
        return cls.model_validate(document)


class Entitlement(PremiumModel):
    """Premium state of a single entity."""

    entity_id: str = Field(..., alias="entityId", description="Entity ID")
    is_premium: bool = Field(False, alias="isPremium", description="Stored premium flag")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt", description="When premium ends")
    activated_by: Optional[str] = Field(None, alias="activatedBy", description="Who granted premium")
    activated_at: Optional[datetime] = Field(None, alias="activatedAt", description="Last activation time")

    @field_validator("expires_at", "activated_at")
    @classmethod
    def normalize_times(cls, value):
        return _as_utc(value)

    def is_active(self, now: datetime) -> bool:
        """Effective premium status at ``now``."""
        return self.is_premium and (self.expires_at is None or self.expires_at > now)

    def is_lazily_expired(self, now: datetime) -> bool:
        """Flagged premium in storage but past its expiry."""
        return self.is_premium and not self.is_active(now)


class CodeActivation(PremiumModel):
    """One redemption of a code."""

    entity_id: str = Field(..., alias="entityId")
    activated_at: datetime = Field(..., alias="activatedAt")

    @field_validator("activated_at")
    @classmethod
    def normalize_times(cls, value):
        return _as_utc(value)


class RedemptionCode(PremiumModel):
    """A redeemable premium code."""

    code: str = Field(..., description="Unique code")
    duration: int = Field(..., gt=0, description="Premium days granted per redemption")
    max_activations: int = Field(..., ge=1, alias="maxActivations", description="Redemption capacity")
    activations: List[CodeActivation] = Field(default_factory=list)
    created_by: str = Field(..., alias="createdBy")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def normalize_times(cls, value):
        return _as_utc(value)

    @property
    def is_exhausted(self) -> bool:
        return len(self.activations) >= self.max_activations

    @property
    def remaining_activations(self) -> int:
        return max(0, self.max_activations - len(self.activations))


def seconds_until(moment: Optional[datetime], now: datetime) -> Optional[float]:
    """Seconds from ``now`` to ``moment``; None when there is no moment."""
    if moment is None:
        return None
    return (moment - now).total_seconds()
