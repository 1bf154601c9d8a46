"""Таблица привязок premium-кошелёк -> профиль.

Обе стороны связи уникальны на уровне БД: это единственная защита от
двойной привязки при конкурентных запросах. Строки не обновляются и не
удаляются, поэтому ``updated_at`` здесь нет.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PremiumProfile(SQLModel, table=True):
    __tablename__ = "premium_profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    wallet_address: str = Field(max_length=42, unique=True, index=True)
    profile_id: str = Field(max_length=128, unique=True, index=True)
    is_active: bool = Field(default=True, index=True)
    linked_at: datetime = Field(default_factory=utcnow, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


__all__ = ["PremiumProfile", "utcnow"]
