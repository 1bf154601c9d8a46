"""Работа с таблицей привязок PremiumProfile."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from premium.models import PremiumProfile


async def get_link_by_wallet(session: AsyncSession, wallet: str) -> Optional[PremiumProfile]:
    stmt = select(PremiumProfile).where(
        PremiumProfile.wallet_address == wallet,
        PremiumProfile.is_active == True,  # noqa: E712
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def get_link_by_profile(session: AsyncSession, profile_id: str) -> Optional[PremiumProfile]:
    stmt = select(PremiumProfile).where(
        PremiumProfile.profile_id == profile_id,
        PremiumProfile.is_active == True,  # noqa: E712
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def insert_link(
    session: AsyncSession,
    *,
    wallet: str,
    profile_id: str,
) -> PremiumProfile:
    """INSERT без предварительных проверок: уникальность держит БД."""

    link = PremiumProfile(wallet_address=wallet, profile_id=profile_id, is_active=True)
    session.add(link)
    await session.commit()
    await session.refresh(link)
    return link


async def find_conflicting_field(
    session: AsyncSession,
    *,
    wallet: str,
    profile_id: str,
) -> Optional[str]:
    """Какое из уникальных полей уже занято (с учётом неактивных записей)."""

    stmt = select(PremiumProfile.id).where(PremiumProfile.wallet_address == wallet)
    if (await session.exec(stmt)).first() is not None:
        return "wallet_address"
    stmt = select(PremiumProfile.id).where(PremiumProfile.profile_id == profile_id)
    if (await session.exec(stmt)).first() is not None:
        return "profile_id"
    return None


__all__ = [
    "find_conflicting_field",
    "get_link_by_profile",
    "get_link_by_wallet",
    "insert_link",
]
