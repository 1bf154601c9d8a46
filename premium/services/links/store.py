"""Хранилище привязок кошелёк -> профиль.

Единственная граница записи в таблицу ``premium_profiles``. Каждый вызов
работает в собственной сессии; уникальные индексы БД отклоняют вторую
привязку даже если обе конкурентные проверки «свободно» прошли.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from premium.models import PremiumProfile
from premium.repositories import (
    find_conflicting_field,
    get_link_by_profile,
    get_link_by_wallet,
    insert_link,
)
from premium.services.exceptions import LinkConstraintViolation, StoreUnavailable

_UNIQUE_FIELDS = ("wallet_address", "profile_id")


@dataclass(slots=True, frozen=True)
class ProfileLink:
    """Привязка, отданная наружу (не ORM-объект)."""

    wallet_address: str
    profile_id: str
    is_active: bool
    linked_at: datetime

    @classmethod
    def from_row(cls, row: PremiumProfile) -> "ProfileLink":
        return cls(
            wallet_address=row.wallet_address,
            profile_id=row.profile_id,
            is_active=row.is_active,
            linked_at=row.linked_at,
        )


class ProfileLinkStore(Protocol):
    async def find_by_wallet(self, wallet: str) -> ProfileLink | None: ...

    async def find_by_profile(self, profile_id: str) -> ProfileLink | None: ...

    async def create(self, wallet: str, profile_id: str) -> ProfileLink: ...


class SqlProfileLinkStore:
    """ProfileLinkStore поверх SQLModel/SQLAlchemy asyncio."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def find_by_wallet(self, wallet: str) -> ProfileLink | None:
        try:
            async with self._session_maker() as session:
                row = await get_link_by_wallet(session, wallet)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"Не удалось прочитать привязку кошелька {wallet}") from exc
        return ProfileLink.from_row(row) if row else None

    async def find_by_profile(self, profile_id: str) -> ProfileLink | None:
        try:
            async with self._session_maker() as session:
                row = await get_link_by_profile(session, profile_id)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"Не удалось прочитать привязку профиля {profile_id}") from exc
        return ProfileLink.from_row(row) if row else None

    async def create(self, wallet: str, profile_id: str) -> ProfileLink:
        """INSERT; нарушение уникальности -> LinkConstraintViolation."""

        try:
            async with self._session_maker() as session:
                try:
                    row = await insert_link(session, wallet=wallet, profile_id=profile_id)
                except IntegrityError as exc:
                    await session.rollback()
                    field = await find_conflicting_field(
                        session, wallet=wallet, profile_id=profile_id
                    )
                    field = field or _field_from_error(exc)
                    logger.warning(
                        "Уникальный индекс отклонил привязку {wallet} -> {profile} ({field})",
                        wallet=wallet,
                        profile=profile_id,
                        field=field,
                    )
                    raise LinkConstraintViolation(field) from exc
        except LinkConstraintViolation:
            raise
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"Не удалось сохранить привязку {wallet}") from exc
        return ProfileLink.from_row(row)


def _field_from_error(exc: IntegrityError) -> str:
    message = str(exc.orig or exc)
    for field in _UNIQUE_FIELDS:
        if field in message:
            return field
    return "wallet_address"


__all__ = ["ProfileLink", "ProfileLinkStore", "SqlProfileLinkStore"]
