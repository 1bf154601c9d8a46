"""Premium-статус и привязка профилей."""

from premium.services.premium.linking_service import ProfileLinkingService, normalize_profile_id
from premium.services.premium.status_resolver import (
    FallbackReason,
    PremiumStatus,
    PremiumStatusResolver,
    StatusKind,
)

__all__ = [
    "FallbackReason",
    "PremiumStatus",
    "PremiumStatusResolver",
    "ProfileLinkingService",
    "StatusKind",
    "normalize_profile_id",
]
