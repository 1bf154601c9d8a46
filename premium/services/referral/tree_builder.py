"""Восстановление бинарного реферального дерева по точечным чтениям NodeSet.

У контракта нет пакетного API, поэтому дерево обходится рекурсивно: один
``eth_call`` на узел. Результат всегда в прямом порядке
``[корень] + левое поддерево + правое поддерево``, даже если соседние
поддеревья читаются параллельно.

Сбой чтения узла не роняет всё построение: поддерево считается
отсутствующим, а в результат добавляется предупреждение. Истечение дедлайна
возвращает уже прочитанную часть дерева, тоже с предупреждением.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from functools import partial
from typing import Callable

from loguru import logger

from premium.services.chain.node_reader import NodeReader
from premium.services.chain.node_record import NodeRecord, normalize_address
from premium.services.exceptions import ChainUnavailable, InvalidTreeDepth


class WarningReason(str, enum.Enum):
    CHAIN_UNAVAILABLE = "chain_unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(slots=True, frozen=True)
class ReferralTreeNode:
    """Узел дерева; ``depth`` считается от корня обхода (корень = 0)."""

    address: str
    depth: int
    parent: str | None = None
    left_child: str | None = None
    right_child: str | None = None
    balance: int = 0
    point: int = 0
    start_time: int = 0

    @classmethod
    def from_record(cls, record: NodeRecord, depth: int) -> "ReferralTreeNode":
        return cls(
            address=record.address,
            depth=depth,
            parent=record.parent,
            left_child=record.left_child,
            right_child=record.right_child,
            balance=record.balance,
            point=record.point,
            start_time=record.start_time,
        )


@dataclass(slots=True, frozen=True)
class TreeWarning:
    address: str
    depth: int
    reason: WarningReason
    detail: str = ""


@dataclass(slots=True)
class ReferralTree:
    root: str
    max_depth: int
    nodes: list[ReferralTreeNode] = field(default_factory=list)
    warnings: list[TreeWarning] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)


@dataclass(slots=True)
class _Branch:
    node: ReferralTreeNode
    left: "_Branch | None" = None
    right: "_Branch | None" = None

    def flatten(self, out: list[ReferralTreeNode]) -> None:
        out.append(self.node)
        if self.left is not None:
            self.left.flatten(out)
        if self.right is not None:
            self.right.flatten(out)


class _Walk:
    """Состояние одного обхода: посещённые адреса, предупреждения, семафор."""

    def __init__(self, reader: NodeReader, max_depth: int, semaphore: asyncio.Semaphore) -> None:
        self.reader = reader
        self.max_depth = max_depth
        self.semaphore = semaphore
        self.visited: set[str] = set()
        self.warnings: list[TreeWarning] = []

    def warn(self, address: str, depth: int, reason: WarningReason, detail: str = "") -> None:
        self.warnings.append(TreeWarning(address, depth, reason, detail))

    async def visit(
        self,
        address: str,
        depth: int,
        attach: Callable[[_Branch], None],
    ) -> None:
        if depth > self.max_depth or address in self.visited:
            return
        self.visited.add(address)

        try:
            async with self.semaphore:
                record = await self.reader.read(address)
        except ChainUnavailable as exc:
            logger.warning(
                "Узел {wallet} (глубина {depth}) не прочитан, поддерево пропущено: {error}",
                wallet=address,
                depth=depth,
                error=exc,
            )
            self.warn(address, depth, WarningReason.CHAIN_UNAVAILABLE, str(exc))
            return
        if not record.exists:
            return

        branch = _Branch(ReferralTreeNode.from_record(record, depth))
        attach(branch)

        children = []
        if record.left_child:
            children.append(self.visit(record.left_child, depth + 1, partial(setattr, branch, "left")))
        if record.right_child:
            children.append(self.visit(record.right_child, depth + 1, partial(setattr, branch, "right")))
        if children:
            await asyncio.gather(*children)


class ReferralTreeBuilder:
    """Строит плоский список узлов дерева от заданного корня."""

    def __init__(
        self,
        reader: NodeReader,
        *,
        max_depth_limit: int = 10,
        max_concurrency: int = 8,
        deadline_sec: float | None = None,
        user_tree_depth: int = 3,
    ) -> None:
        self._reader = reader
        self._max_depth_limit = max_depth_limit
        self._max_concurrency = max_concurrency
        self._deadline = deadline_sec
        self._user_tree_depth = user_tree_depth

    @property
    def max_depth_limit(self) -> int:
        return self._max_depth_limit

    def validate_depth(self, max_depth: int) -> int:
        if isinstance(max_depth, bool) or not isinstance(max_depth, int):
            raise InvalidTreeDepth("Глубина дерева должна быть целым числом")
        if max_depth < 0 or max_depth > self._max_depth_limit:
            raise InvalidTreeDepth(
                f"Глубина дерева должна быть от 0 до {self._max_depth_limit}"
            )
        return max_depth

    async def build(
        self,
        root: str,
        max_depth: int,
        *,
        deadline_sec: float | None = None,
    ) -> ReferralTree:
        """Обходит дерево от ``root`` не глубже ``max_depth``."""

        root = normalize_address(root)
        max_depth = self.validate_depth(max_depth)
        walk = _Walk(self._reader, max_depth, asyncio.Semaphore(self._max_concurrency))
        slot: list[_Branch] = []

        try:
            deadline = self._deadline if deadline_sec is None else deadline_sec
            async with asyncio.timeout(deadline):
                await walk.visit(root, 0, slot.append)
        except TimeoutError:
            logger.warning(
                "Построение дерева {root} прервано по дедлайну, отдаём частичный результат",
                root=root,
            )
            walk.warn(root, 0, WarningReason.DEADLINE_EXCEEDED)

        tree = ReferralTree(root=root, max_depth=max_depth, warnings=walk.warnings)
        if slot:
            slot[0].flatten(tree.nodes)
        logger.info(
            "Дерево {root}: {count} узлов до глубины {depth}, предупреждений {warnings}",
            root=root,
            count=tree.total_nodes,
            depth=max_depth,
            warnings=len(tree.warnings),
        )
        return tree

    async def build_user_tree(self, wallet: str) -> ReferralTree:
        """Собственная нижняя линия пользователя с фиксированной глубиной."""

        return await self.build(wallet, self._user_tree_depth)


__all__ = [
    "ReferralTree",
    "ReferralTreeBuilder",
    "ReferralTreeNode",
    "TreeWarning",
    "WarningReason",
]
