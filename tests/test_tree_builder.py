"""
Тесты построения реферального дерева.
"""

from __future__ import annotations

import asyncio

import pytest

from premium.services.exceptions import InvalidAddress, InvalidTreeDepth
from premium.services.referral.tree_builder import ReferralTreeBuilder, WarningReason
from tests.helpers import FakeNodeReader, node, wallet

ROOT, A, B, C, D, E = (wallet(n) for n in range(1, 7))


def sample_reader() -> FakeNodeReader:
    """
        ROOT
       /    \\
      A      B
     / \\      \\
    C   D      E
    """

    return FakeNodeReader(
        [
            node(ROOT, left=A, right=B),
            node(A, left=C, right=D, parent=ROOT),
            node(B, right=E, parent=ROOT, balance=10**18),
            node(C, parent=A),
            node(D, parent=A),
            node(E, parent=B, point=3),
        ]
    )


class DelayedReader(FakeNodeReader):
    """Задерживает чтение отдельных адресов."""

    def __init__(self, records, delays: dict[str, float]) -> None:
        super().__init__(records)
        self.delays = delays

    async def read(self, address: str):
        await asyncio.sleep(self.delays.get(address, 0))
        return await super().read(address)


def addresses(tree) -> list[str]:
    return [n.address for n in tree.nodes]


class TestBuild:
    @pytest.mark.asyncio
    async def test_pre_order(self):
        tree = await ReferralTreeBuilder(sample_reader()).build(ROOT, 5)

        assert addresses(tree) == [ROOT, A, C, D, B, E]
        assert [n.depth for n in tree.nodes] == [0, 1, 2, 2, 1, 2]
        assert not tree.partial
        assert tree.total_nodes == 6

    @pytest.mark.asyncio
    async def test_node_payload(self):
        tree = await ReferralTreeBuilder(sample_reader()).build(ROOT, 5)
        by_address = {n.address: n for n in tree.nodes}

        assert by_address[B].balance == 10**18
        assert by_address[B].parent == ROOT
        assert by_address[B].left_child is None
        assert by_address[B].right_child == E
        assert by_address[E].point == 3

    @pytest.mark.asyncio
    async def test_order_survives_uneven_latency(self):
        reader = sample_reader()
        slow = DelayedReader(reader.records.values(), {A: 0.05, C: 0.02})

        tree = await ReferralTreeBuilder(slow).build(ROOT, 5)

        assert addresses(tree) == [ROOT, A, C, D, B, E]

    @pytest.mark.asyncio
    async def test_depth_limit_stops_reads(self):
        reader = sample_reader()

        tree = await ReferralTreeBuilder(reader).build(ROOT, 1)

        assert addresses(tree) == [ROOT, A, B]
        assert set(reader.calls) == {ROOT, A, B}

    @pytest.mark.asyncio
    async def test_zero_depth_is_root_only(self):
        tree = await ReferralTreeBuilder(sample_reader()).build(ROOT, 0)

        assert addresses(tree) == [ROOT]

    @pytest.mark.asyncio
    async def test_subtree_root(self):
        tree = await ReferralTreeBuilder(sample_reader()).build(A, 5)

        assert addresses(tree) == [A, C, D]
        assert tree.nodes[0].depth == 0

    @pytest.mark.asyncio
    async def test_unregistered_root_gives_empty_tree(self):
        tree = await ReferralTreeBuilder(FakeNodeReader()).build(ROOT, 5)

        assert tree.nodes == []
        assert not tree.partial

    @pytest.mark.asyncio
    async def test_both_children_absent_gives_root_only(self):
        reader = FakeNodeReader([node(ROOT, left=A, right=B)])

        tree = await ReferralTreeBuilder(reader).build(ROOT, 5)

        assert addresses(tree) == [ROOT]
        assert not tree.partial
        assert set(reader.calls) == {ROOT, A, B}

    @pytest.mark.asyncio
    async def test_dangling_child_skipped(self):
        reader = FakeNodeReader([node(ROOT, left=A, right=B), node(B, parent=ROOT)])

        tree = await ReferralTreeBuilder(reader).build(ROOT, 5)

        assert addresses(tree) == [ROOT, B]
        assert not tree.partial

    @pytest.mark.asyncio
    async def test_cycle_is_visited_once(self):
        reader = FakeNodeReader([node(ROOT, left=A), node(A, left=ROOT, right=A)])

        tree = await ReferralTreeBuilder(reader).build(ROOT, 10)

        assert addresses(tree) == [ROOT, A]
        assert reader.calls.count(ROOT) == 1

    @pytest.mark.asyncio
    async def test_user_tree_uses_fixed_depth(self):
        chain = [wallet(n) for n in range(10, 16)]
        records = [
            node(addr, left=chain[i + 1] if i + 1 < len(chain) else None)
            for i, addr in enumerate(chain)
        ]
        builder = ReferralTreeBuilder(FakeNodeReader(records), user_tree_depth=3)

        tree = await builder.build_user_tree(chain[0])

        assert addresses(tree) == chain[:4]
        assert tree.max_depth == 3


class TestPartialTrees:
    @pytest.mark.asyncio
    async def test_failed_subtree_reported(self):
        reader = sample_reader()
        reader.failing.add(A)

        tree = await ReferralTreeBuilder(reader).build(ROOT, 5)

        assert addresses(tree) == [ROOT, B, E]
        assert tree.partial
        assert len(tree.warnings) == 1
        warning = tree.warnings[0]
        assert warning.address == A
        assert warning.depth == 1
        assert warning.reason is WarningReason.CHAIN_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_failed_root(self):
        reader = sample_reader()
        reader.failing.add(ROOT)

        tree = await ReferralTreeBuilder(reader).build(ROOT, 5)

        assert tree.nodes == []
        assert tree.warnings[0].reason is WarningReason.CHAIN_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_deadline_keeps_finished_nodes(self):
        reader = sample_reader()
        slow = DelayedReader(reader.records.values(), {C: 5})

        tree = await ReferralTreeBuilder(slow).build(ROOT, 5, deadline_sec=0.2)

        assert addresses(tree) == [ROOT, A, D, B, E]
        assert tree.partial
        assert tree.warnings[-1].reason is WarningReason.DEADLINE_EXCEEDED


    @pytest.mark.asyncio
    async def test_explicit_zero_deadline_overrides_default(self):
        builder = ReferralTreeBuilder(sample_reader(), deadline_sec=30)

        tree = await builder.build(ROOT, 5, deadline_sec=0)

        assert tree.total_nodes < 6
        assert tree.warnings[-1].reason is WarningReason.DEADLINE_EXCEEDED


class TestDepthValidation:
    @pytest.mark.parametrize("depth", [-1, 11, True, 2.5, "3", None])
    def test_rejects(self, depth):
        with pytest.raises(InvalidTreeDepth):
            ReferralTreeBuilder(FakeNodeReader()).validate_depth(depth)

    @pytest.mark.parametrize("depth", [0, 5, 10])
    def test_accepts_bounds(self, depth):
        assert ReferralTreeBuilder(FakeNodeReader()).validate_depth(depth) == depth

    @pytest.mark.asyncio
    async def test_invalid_depth_makes_no_reads(self):
        reader = sample_reader()

        with pytest.raises(InvalidTreeDepth):
            await ReferralTreeBuilder(reader).build(ROOT, 11)
        assert reader.calls == []

    @pytest.mark.asyncio
    async def test_invalid_root(self):
        with pytest.raises(InvalidAddress):
            await ReferralTreeBuilder(sample_reader()).build("root", 3)
