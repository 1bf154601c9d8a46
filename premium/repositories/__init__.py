"""Репозитории для работы с БД."""

from .premium_profile_repo import (
    find_conflicting_field,
    get_link_by_profile,
    get_link_by_wallet,
    insert_link,
)

__all__ = [
    "find_conflicting_field",
    "get_link_by_profile",
    "get_link_by_wallet",
    "insert_link",
]
