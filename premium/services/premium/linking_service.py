"""Привязка premium-кошелька к профилю.

Правило простое: первая успешная привязка постоянна. Кошелёк получает не
больше одного профиля, профиль не больше одного кошелька, и привязать можно
только кошелёк, чей узел прямо сейчас существует в контракте.
"""

from __future__ import annotations

from loguru import logger

from premium.services.chain.node_reader import NodeReader
from premium.services.chain.node_record import normalize_address
from premium.services.exceptions import (
    InvalidProfileId,
    LinkConstraintViolation,
    LinkError,
    LinkPermanent,
    ProfileAlreadyLinked,
    WalletAlreadyLinked,
    WalletNotPremium,
)
from premium.services.links.store import ProfileLink, ProfileLinkStore

MAX_PROFILE_ID_LENGTH = 128


def normalize_profile_id(profile_id: str | None) -> str:
    if not isinstance(profile_id, str) or not profile_id.strip():
        raise InvalidProfileId("Не указан идентификатор профиля")
    profile_id = profile_id.strip()
    if len(profile_id) > MAX_PROFILE_ID_LENGTH:
        raise InvalidProfileId("Слишком длинный идентификатор профиля")
    return profile_id


class ProfileLinkingService:
    """Единственный путь записи привязки."""

    def __init__(self, reader: NodeReader, store: ProfileLinkStore) -> None:
        self._reader = reader
        self._store = store

    async def link(self, wallet: str, profile_id: str) -> ProfileLink:
        """Привязывает профиль к кошельку навсегда.

        Порядок фиксирован: чтение сети, затем проверки хранилища, затем INSERT.
        ``ChainUnavailable`` и ``StoreUnavailable`` пробрасываются вызывающему.
        """

        wallet = normalize_address(wallet)
        profile_id = normalize_profile_id(profile_id)
        try:
            node = await self._reader.read(wallet)
            if not node.exists:
                raise WalletNotPremium(f"Кошелёк {wallet} не зарегистрирован в NodeSet")

            existing = await self._store.find_by_wallet(wallet)
            if existing is not None:
                raise WalletAlreadyLinked(
                    f"Кошелёк {wallet} уже привязан к профилю {existing.profile_id}"
                )
            if await self._store.find_by_profile(profile_id) is not None:
                raise ProfileAlreadyLinked(f"Профиль {profile_id} уже привязан к другому кошельку")

            try:
                link = await self._store.create(wallet, profile_id)
            except LinkConstraintViolation as exc:
                # Конкурентный запрос успел первым между проверкой и INSERT.
                if exc.field == "profile_id":
                    raise ProfileAlreadyLinked(
                        f"Профиль {profile_id} уже привязан к другому кошельку"
                    ) from exc
                raise WalletAlreadyLinked(f"Кошелёк {wallet} уже привязан") from exc
        except LinkError as exc:
            logger.warning(
                "Привязка {wallet} -> {profile} отклонена: {code}",
                wallet=wallet,
                profile=profile_id,
                code=exc.code,
            )
            raise

        logger.info("Профиль {profile} привязан к кошельку {wallet}", profile=profile_id, wallet=wallet)
        return link

    async def linked_profile(self, wallet: str) -> ProfileLink | None:
        return await self._store.find_by_wallet(normalize_address(wallet))

    async def unlink(self, wallet: str) -> None:
        """Отвязка запрещена: привязка необратима."""

        raise LinkPermanent(
            f"Привязка кошелька {normalize_address(wallet)} постоянна и не может быть снята"
        )


__all__ = ["ProfileLinkingService", "normalize_profile_id"]
