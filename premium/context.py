"""Сборка сервисов premium-подсистемы из настроек.

Глобальных клиентов нет: контекст создаётся один раз на процесс (в lifespan
веб-приложения или в скрипте) и явно передаётся дальше.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import AppSettings, get_settings
from premium.db import get_session_maker
from premium.services.chain.node_reader import CachedNodeReader, ContractNodeReader, NodeReader
from premium.services.links.store import ProfileLink, SqlProfileLinkStore
from premium.services.premium.linking_service import ProfileLinkingService
from premium.services.premium.status_resolver import PremiumStatus, PremiumStatusResolver
from premium.services.referral.tree_builder import ReferralTree, ReferralTreeBuilder
from premium.utils.cache import configure_cache


@dataclass(slots=True)
class PremiumContext:
    settings: AppSettings
    reader: NodeReader
    store: SqlProfileLinkStore
    linker: ProfileLinkingService
    resolver: PremiumStatusResolver
    tree_builder: ReferralTreeBuilder

    async def resolve_status(
        self, wallet: str, candidate_profile_id: str | None = None
    ) -> PremiumStatus:
        return await self.resolver.resolve(wallet, candidate_profile_id)

    async def link_profile(self, wallet: str, profile_id: str) -> ProfileLink:
        return await self.linker.link(wallet, profile_id)

    async def linked_profile(self, wallet: str) -> ProfileLink | None:
        return await self.linker.linked_profile(wallet)

    async def build_referral_tree(self, root_wallet: str, max_depth: int) -> ReferralTree:
        return await self.tree_builder.build(root_wallet, max_depth)

    async def close(self) -> None:
        close = getattr(self.reader, "close", None)
        if close is not None:
            await close()


def build_context(
    settings: AppSettings | None = None,
    *,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    reader: NodeReader | None = None,
) -> PremiumContext:
    """Создаёт все сервисы; ``reader``/``session_maker`` можно подменить в тестах."""

    settings = settings or get_settings()
    session_maker = session_maker or get_session_maker()
    if reader is None:
        reader = ContractNodeReader(
            rpc_endpoint=str(settings.chain.rpc_endpoint),
            contract_address=settings.chain.referral_contract,
            request_timeout=settings.chain.request_timeout_sec,
        )

    tree_reader: NodeReader = reader
    if settings.cache.tree_reads_enabled:
        configure_cache()
        tree_reader = CachedNodeReader(
            reader,
            ttl=settings.cache.ttl_seconds,
            namespace=f"node:{settings.chain.referral_contract}",
        )

    store = SqlProfileLinkStore(session_maker)
    linker = ProfileLinkingService(reader, store)
    resolver = PremiumStatusResolver(
        reader,
        store,
        linker,
        fail_closed=settings.premium.fail_closed,
        auto_link_enabled=settings.premium.auto_link_enabled,
        deadline_sec=settings.premium.deadline_sec,
    )
    tree_builder = ReferralTreeBuilder(
        tree_reader,
        max_depth_limit=settings.tree.max_depth_limit,
        max_concurrency=settings.tree.max_concurrency,
        deadline_sec=settings.tree.deadline_sec,
        user_tree_depth=settings.tree.user_tree_depth,
    )
    logger.info(
        "Premium-контекст собран: контракт {contract}, fail_closed={fail_closed}",
        contract=settings.chain.referral_contract,
        fail_closed=settings.premium.fail_closed,
    )
    return PremiumContext(
        settings=settings,
        reader=reader,
        store=store,
        linker=linker,
        resolver=resolver,
        tree_builder=tree_builder,
    )


__all__ = ["PremiumContext", "build_context"]
