"""Вычисление premium-статуса кошелька.

Сеть (NodeSet) отвечает на вопрос «premium ли кошелёк», таблица привязок на
вопрос «к какому профилю он привязан». Итог один из трёх:

* ``Standard`` — узла нет (или статус неизвестен и сработал fail-closed);
* ``PremiumUnlinked`` — узел есть, профиля нет;
* ``PremiumLinked`` — узел есть и профиль привязан.

Сбои сети/БД никогда не повышают статус: при ``fail_closed`` отдаём
``Standard`` с заполненным ``fallback_reason`` и пишем предупреждение в лог.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass

from loguru import logger

from premium.services.chain.node_reader import NodeReader
from premium.services.chain.node_record import normalize_address
from premium.services.exceptions import (
    ChainUnavailable,
    InvalidInput,
    LinkError,
    StoreUnavailable,
    TransientError,
)
from premium.services.links.store import ProfileLink, ProfileLinkStore
from premium.services.premium.linking_service import ProfileLinkingService


class StatusKind(str, enum.Enum):
    STANDARD = "Standard"
    PREMIUM_UNLINKED = "PremiumUnlinked"
    PREMIUM_LINKED = "PremiumLinked"


class FallbackReason(str, enum.Enum):
    CHAIN_UNAVAILABLE = "chain_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(slots=True, frozen=True)
class PremiumStatus:
    kind: StatusKind
    wallet: str
    link: ProfileLink | None = None
    fallback_reason: FallbackReason | None = None

    @property
    def degraded(self) -> bool:
        """True, если статус не проверен, а выставлен по fail-closed."""

        return self.fallback_reason is not None

    @property
    def is_premium(self) -> bool:
        return self.kind is not StatusKind.STANDARD

    @classmethod
    def standard(cls, wallet: str) -> "PremiumStatus":
        return cls(StatusKind.STANDARD, wallet)

    @classmethod
    def unlinked(cls, wallet: str) -> "PremiumStatus":
        return cls(StatusKind.PREMIUM_UNLINKED, wallet)

    @classmethod
    def linked(cls, wallet: str, link: ProfileLink) -> "PremiumStatus":
        return cls(StatusKind.PREMIUM_LINKED, wallet, link=link)

    @classmethod
    def fallback(cls, wallet: str, reason: FallbackReason) -> "PremiumStatus":
        return cls(StatusKind.STANDARD, wallet, fallback_reason=reason)


class PremiumStatusResolver:
    """Сводит NodeSet и таблицу привязок в один статус."""

    def __init__(
        self,
        reader: NodeReader,
        store: ProfileLinkStore,
        linker: ProfileLinkingService,
        *,
        fail_closed: bool = True,
        auto_link_enabled: bool = True,
        deadline_sec: float | None = None,
    ) -> None:
        self._reader = reader
        self._store = store
        self._linker = linker
        self._fail_closed = fail_closed
        self._auto_link_enabled = auto_link_enabled
        self._deadline = deadline_sec

    async def resolve(
        self,
        wallet: str,
        candidate_profile_id: str | None = None,
    ) -> PremiumStatus:
        """Статус кошелька; с кандидатом пытается сразу привязать профиль.

        ``InvalidAddress`` пробрасывается всегда. Неудачная автопривязка не
        ошибка: кошелёк просто остаётся ``PremiumUnlinked``.

        Дедлайн ограничивает только чтения статуса. Автопривязка выполняется
        после него, иначе истечение времени после INSERT вернуло бы ``Standard``
        для уже привязанного кошелька.
        """

        wallet = normalize_address(wallet)
        try:
            async with asyncio.timeout(self._deadline):
                status = await self._resolve(wallet)
        except TimeoutError:
            return self._fallback(wallet, FallbackReason.DEADLINE_EXCEEDED, None)

        if (
            status.kind is StatusKind.PREMIUM_UNLINKED
            and candidate_profile_id
            and self._auto_link_enabled
        ):
            return await self._auto_link(wallet, candidate_profile_id)
        return status

    async def _resolve(self, wallet: str) -> PremiumStatus:
        try:
            node = await self._reader.read(wallet)
        except ChainUnavailable as exc:
            return self._fallback(wallet, FallbackReason.CHAIN_UNAVAILABLE, exc)

        if not node.exists:
            return PremiumStatus.standard(wallet)

        try:
            link = await self._store.find_by_wallet(wallet)
        except StoreUnavailable as exc:
            return self._fallback(wallet, FallbackReason.STORE_UNAVAILABLE, exc)

        if link is not None:
            return PremiumStatus.linked(wallet, link)
        return PremiumStatus.unlinked(wallet)

    async def _auto_link(self, wallet: str, profile_id: str) -> PremiumStatus:
        try:
            link = await self._linker.link(wallet, profile_id)
        except (LinkError, TransientError, InvalidInput) as exc:
            logger.info(
                "Автопривязка {profile} к {wallet} не удалась ({code}), статус PremiumUnlinked",
                profile=profile_id,
                wallet=wallet,
                code=exc.code,
            )
            return PremiumStatus.unlinked(wallet)
        return PremiumStatus.linked(wallet, link)

    def _fallback(
        self,
        wallet: str,
        reason: FallbackReason,
        error: TransientError | None,
    ) -> PremiumStatus:
        if not self._fail_closed:
            if error is not None:
                raise error
            raise TransientError(f"Статус {wallet} не получен за отведённое время")
        logger.warning(
            "Статус {wallet} неизвестен ({reason}): {error}; fail-closed -> Standard",
            wallet=wallet,
            reason=reason.value,
            error=error,
        )
        return PremiumStatus.fallback(wallet, reason)


__all__ = ["FallbackReason", "PremiumStatus", "PremiumStatusResolver", "StatusKind"]
