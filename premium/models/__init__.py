"""SQLModel сущности premium-подсистемы."""

from .premium_profile import PremiumProfile  # noqa: F401

__all__ = ["PremiumProfile"]
