"""
Audience Targeting

User profiles, the identity provider port and the targeting predicate shared
by experiments and promotions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from plutus.services.timeutils import parse_datetime, to_iso


@dataclass
class UserProfile:
    """Attributes of a storefront user relevant to targeting."""
    id: str
    segments: List[str] = field(default_factory=list)
    country: Optional[str] = None
    device_type: Optional[str] = None
    registered_at: Optional[datetime] = None
    purchase_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(data["id"]),
            segments=list(data.get("segments", [])),
            country=data.get("country"),
            device_type=data.get("device_type"),
            registered_at=parse_datetime(data.get("registered_at")),
            purchase_count=int(data.get("purchase_count", 0)),
        )


class IdentityProvider(Protocol):
    """Resolves users for targeting; implemented by the host application."""

    async def current_user(self) -> Optional[UserProfile]:
        ...

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...


class StaticIdentityProvider:
    """Identity provider backed by a fixed set of profiles."""

    def __init__(
        self,
        profiles: Optional[List[UserProfile]] = None,
        current_user_id: Optional[str] = None,
    ):
        self._profiles: Dict[str, UserProfile] = {p.id: p for p in profiles or []}
        self.current_user_id = current_user_id

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.id] = profile

    async def current_user(self) -> Optional[UserProfile]:
        if self.current_user_id is None:
            return None
        return await self.get_user(self.current_user_id)

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        # Unknown users still get a bare profile so untargeted tests apply
        return self._profiles.get(user_id) or UserProfile(id=user_id)


@dataclass
class AudienceTargeting:
    """Who an experiment or promotion applies to. Empty criteria match all."""
    user_segments: List[str] = field(default_factory=list)
    geo_targeting: List[str] = field(default_factory=list)
    device_types: List[str] = field(default_factory=list)
    min_purchases: Optional[int] = None
    max_purchases: Optional[int] = None
    registered_after: Optional[datetime] = None
    registered_before: Optional[datetime] = None
    exclude_users: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.user_segments
            or self.geo_targeting
            or self.device_types
            or self.min_purchases is not None
            or self.max_purchases is not None
            or self.registered_after
            or self.registered_before
            or self.exclude_users
        )

    def matches(self, profile: Optional[UserProfile]) -> bool:
        """Evaluate the predicate against a user profile."""
        if self.is_empty:
            return True
        if profile is None:
            return False

        if profile.id in self.exclude_users:
            return False
        # "all" is the catch-all segment used by campaign templates
        if self.user_segments and "all" not in self.user_segments:
            if not set(self.user_segments) & set(profile.segments):
                return False
        if self.geo_targeting:
            if not profile.country or profile.country.upper() not in {
                c.upper() for c in self.geo_targeting
            }:
                return False
        if self.device_types and profile.device_type not in self.device_types:
            return False
        if self.min_purchases is not None and profile.purchase_count < self.min_purchases:
            return False
        if self.max_purchases is not None and profile.purchase_count > self.max_purchases:
            return False
        if self.registered_after or self.registered_before:
            if profile.registered_at is None:
                return False
            if self.registered_after and profile.registered_at < self.registered_after:
                return False
            if self.registered_before and profile.registered_at > self.registered_before:
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_segments": self.user_segments,
            "geo_targeting": self.geo_targeting,
            "device_types": self.device_types,
            "min_purchases": self.min_purchases,
            "max_purchases": self.max_purchases,
            "registered_after": to_iso(self.registered_after),
            "registered_before": to_iso(self.registered_before),
            "exclude_users": self.exclude_users,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AudienceTargeting":
        data = data or {}
        return cls(
            user_segments=list(data.get("user_segments", [])),
            geo_targeting=list(data.get("geo_targeting", [])),
            device_types=list(data.get("device_types", [])),
            min_purchases=data.get("min_purchases"),
            max_purchases=data.get("max_purchases"),
            registered_after=parse_datetime(data.get("registered_after")),
            registered_before=parse_datetime(data.get("registered_before")),
            exclude_users=list(data.get("exclude_users", [])),
        )
