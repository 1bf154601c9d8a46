"""
Тесты хранилища привязок и сервиса привязки профиля.
"""

from __future__ import annotations

import asyncio

import pytest

from premium.db import build_session_maker, create_engine_from_dsn
from premium.models import PremiumProfile
from premium.services.exceptions import (
    ChainUnavailable,
    InvalidAddress,
    InvalidProfileId,
    LinkConstraintViolation,
    LinkPermanent,
    ProfileAlreadyLinked,
    StoreUnavailable,
    WalletAlreadyLinked,
    WalletNotPremium,
)
from premium.services.links.store import SqlProfileLinkStore
from premium.services.premium.linking_service import ProfileLinkingService, normalize_profile_id
from tests.helpers import FakeNodeReader, node, wallet


class BlindStore(SqlProfileLinkStore):
    """Проверки «свободно» всегда проходят: до INSERT доходит любой запрос."""

    async def find_by_wallet(self, wallet: str):
        return None

    async def find_by_profile(self, profile_id: str):
        return None


async def insert_inactive(session_maker, *, wallet_address: str, profile_id: str) -> None:
    async with session_maker() as session:
        session.add(
            PremiumProfile(wallet_address=wallet_address, profile_id=profile_id, is_active=False)
        )
        await session.commit()


class TestSqlProfileLinkStore:
    @pytest.mark.asyncio
    async def test_create_and_find(self, store):
        link = await store.create(wallet(1), "profile-1")

        assert link.wallet_address == wallet(1)
        assert link.profile_id == "profile-1"
        assert link.is_active
        assert link.linked_at is not None
        assert (await store.find_by_wallet(wallet(1))).profile_id == "profile-1"
        assert (await store.find_by_profile("profile-1")).wallet_address == wallet(1)

    @pytest.mark.asyncio
    async def test_missing_links(self, store):
        assert await store.find_by_wallet(wallet(1)) is None
        assert await store.find_by_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_duplicate_wallet_rejected_by_index(self, store):
        await store.create(wallet(1), "profile-1")

        with pytest.raises(LinkConstraintViolation) as exc_info:
            await store.create(wallet(1), "profile-2")

        assert exc_info.value.field == "wallet_address"
        assert await store.find_by_profile("profile-2") is None

    @pytest.mark.asyncio
    async def test_duplicate_profile_rejected_by_index(self, store):
        await store.create(wallet(1), "profile-1")

        with pytest.raises(LinkConstraintViolation) as exc_info:
            await store.create(wallet(2), "profile-1")

        assert exc_info.value.field == "profile_id"
        assert await store.find_by_wallet(wallet(2)) is None

    @pytest.mark.asyncio
    async def test_inactive_rows_hidden_but_still_unique(self, store, session_maker):
        await insert_inactive(session_maker, wallet_address=wallet(1), profile_id="old")

        assert await store.find_by_wallet(wallet(1)) is None
        assert await store.find_by_profile("old") is None
        with pytest.raises(LinkConstraintViolation) as exc_info:
            await store.create(wallet(1), "new")
        assert exc_info.value.field == "wallet_address"

    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path):
        engine = create_engine_from_dsn(
            f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'premium.db'}"
        )
        broken = SqlProfileLinkStore(build_session_maker(engine))

        with pytest.raises(StoreUnavailable):
            await broken.find_by_wallet(wallet(1))
        with pytest.raises(StoreUnavailable):
            await broken.create(wallet(1), "profile-1")
        await engine.dispose()


class TestNormalizeProfileId:
    def test_strips(self):
        assert normalize_profile_id("  abc  ") == "abc"

    @pytest.mark.parametrize("value", [None, "", "   ", "x" * 129, 12])
    def test_rejects(self, value):
        with pytest.raises(InvalidProfileId):
            normalize_profile_id(value)


class TestProfileLinkingService:
    @pytest.mark.asyncio
    async def test_links_premium_wallet(self, store):
        reader = FakeNodeReader([node(wallet(0xABC))])
        service = ProfileLinkingService(reader, store)

        link = await service.link("0x" + wallet(0xABC)[2:].upper(), " profile-1 ")

        assert link.wallet_address == wallet(0xABC)
        assert link.profile_id == "profile-1"
        assert (await service.linked_profile(wallet(0xABC))).profile_id == "profile-1"

    @pytest.mark.asyncio
    async def test_non_premium_wallet_rejected(self, store):
        service = ProfileLinkingService(FakeNodeReader(), store)

        with pytest.raises(WalletNotPremium):
            await service.link(wallet(1), "profile-1")
        assert await store.find_by_profile("profile-1") is None

    @pytest.mark.asyncio
    async def test_wallet_already_linked(self, store):
        service = ProfileLinkingService(FakeNodeReader([node(wallet(1))]), store)
        await service.link(wallet(1), "profile-1")

        with pytest.raises(WalletAlreadyLinked):
            await service.link(wallet(1), "profile-2")
        assert (await store.find_by_wallet(wallet(1))).profile_id == "profile-1"

    @pytest.mark.asyncio
    async def test_profile_already_linked(self, store):
        reader = FakeNodeReader([node(wallet(1)), node(wallet(2))])
        service = ProfileLinkingService(reader, store)
        await service.link(wallet(1), "profile-1")

        with pytest.raises(ProfileAlreadyLinked):
            await service.link(wallet(2), "profile-1")
        assert await store.find_by_wallet(wallet(2)) is None

    @pytest.mark.asyncio
    async def test_chain_failure_propagates_without_writes(self, store):
        reader = FakeNodeReader([node(wallet(1))])
        reader.failing.add(wallet(1))
        service = ProfileLinkingService(reader, store)

        with pytest.raises(ChainUnavailable):
            await service.link(wallet(1), "profile-1")
        assert await store.find_by_wallet(wallet(1)) is None

    @pytest.mark.asyncio
    async def test_invalid_input_checked_before_network(self, store):
        reader = FakeNodeReader([node(wallet(1))])
        service = ProfileLinkingService(reader, store)

        with pytest.raises(InvalidAddress):
            await service.link("0x123", "profile-1")
        with pytest.raises(InvalidProfileId):
            await service.link(wallet(1), "")
        assert reader.calls == []

    @pytest.mark.asyncio
    async def test_unlink_is_refused(self, store):
        service = ProfileLinkingService(FakeNodeReader([node(wallet(1))]), store)
        await service.link(wallet(1), "profile-1")

        with pytest.raises(LinkPermanent):
            await service.unlink(wallet(1))
        assert (await store.find_by_wallet(wallet(1))).is_active

    @pytest.mark.asyncio
    async def test_race_on_wallet_maps_to_wallet_already_linked(self, session_maker):
        store = BlindStore(session_maker)
        service = ProfileLinkingService(FakeNodeReader([node(wallet(1))]), store)
        await service.link(wallet(1), "profile-1")

        with pytest.raises(WalletAlreadyLinked):
            await service.link(wallet(1), "profile-2")

    @pytest.mark.asyncio
    async def test_race_on_profile_maps_to_profile_already_linked(self, session_maker):
        store = BlindStore(session_maker)
        reader = FakeNodeReader([node(wallet(1)), node(wallet(2))])
        service = ProfileLinkingService(reader, store)
        await service.link(wallet(1), "profile-1")

        with pytest.raises(ProfileAlreadyLinked):
            await service.link(wallet(2), "profile-1")


class TestConcurrentLinking:
    @pytest.mark.asyncio
    async def test_one_wallet_many_profiles(self, store):
        service = ProfileLinkingService(FakeNodeReader([node(wallet(1))]), store)

        results = await asyncio.gather(
            *(service.link(wallet(1), f"profile-{i}") for i in range(4)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, WalletAlreadyLinked) for r in losers)
        stored = await store.find_by_wallet(wallet(1))
        assert stored.profile_id == winners[0].profile_id

    @pytest.mark.asyncio
    async def test_one_profile_many_wallets(self, store):
        reader = FakeNodeReader([node(wallet(i)) for i in range(1, 5)])
        service = ProfileLinkingService(reader, store)

        results = await asyncio.gather(
            *(service.link(wallet(i), "shared") for i in range(1, 5)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, ProfileAlreadyLinked) for r in losers)
        assert (await store.find_by_profile("shared")).wallet_address == winners[0].wallet_address
