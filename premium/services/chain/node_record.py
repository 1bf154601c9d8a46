"""Единый декодер записи NodeSet реферального контракта.

Все потребители (статус, привязка, дерево) читают узел через одну раскладку
кортежа ``NodeSet(address)``; других вариантов полей в проекте нет.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from premium.services.exceptions import InvalidAddress

ZERO_ADDRESS = "0x" + "0" * 40
_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")

# Порядок полей совпадает с view-функцией контракта.
NODE_SET_SIGNATURE = "NodeSet(address)"
NODE_SET_OUTPUT_TYPES: tuple[str, ...] = (
    "uint256",  # startTime
    "uint256",  # balance
    "uint24",  # point
    "uint24",  # depthLeftBranch
    "uint24",  # depthRightBranch
    "uint24",  # depth
    "address",  # player
    "address",  # parent
    "address",  # leftChild
    "address",  # rightChild
    "bool",  # isPointChanged
    "bool",  # unbalancedAllowance
)


def normalize_address(value: str | None) -> str:
    """Приводит адрес к нижнему регистру и проверяет формат."""

    if not isinstance(value, str):
        raise InvalidAddress("Адрес кошелька не указан")
    candidate = value.strip().lower()
    if not _ADDRESS_RE.match(candidate):
        raise InvalidAddress(f"Некорректный адрес кошелька: {value!r}")
    return candidate


def optional_address(value: str | None) -> str | None:
    """Нулевой адрес в полях parent/child означает «нет значения»."""

    if not value:
        return None
    candidate = value.lower()
    if candidate == ZERO_ADDRESS:
        return None
    return candidate


@dataclass(slots=True, frozen=True)
class NodeRecord:
    """Снимок узла реферального дерева на момент чтения."""

    address: str
    start_time: int = 0
    balance: int = 0
    point: int = 0
    depth: int = 0
    depth_left_branch: int = 0
    depth_right_branch: int = 0
    parent: str | None = None
    left_child: str | None = None
    right_child: str | None = None
    is_point_changed: bool = False
    unbalanced_allowance: bool = False

    @property
    def exists(self) -> bool:
        return self.start_time > 0

    @property
    def children(self) -> tuple[str | None, str | None]:
        return self.left_child, self.right_child

    @classmethod
    def absent(cls, address: str) -> "NodeRecord":
        return cls(address=address)

    @classmethod
    def from_node_set(cls, address: str, values: Sequence[Any]) -> "NodeRecord":
        """Строит запись из декодированного кортежа ``NodeSet``."""

        if len(values) != len(NODE_SET_OUTPUT_TYPES):
            raise ValueError(
                f"NodeSet вернул {len(values)} полей, ожидалось {len(NODE_SET_OUTPUT_TYPES)}"
            )
        (
            start_time,
            balance,
            point,
            depth_left,
            depth_right,
            depth,
            _player,
            parent,
            left_child,
            right_child,
            is_point_changed,
            unbalanced_allowance,
        ) = values
        if int(start_time) == 0:
            return cls.absent(address)
        return cls(
            address=address,
            start_time=int(start_time),
            balance=int(balance),
            point=int(point),
            depth=int(depth),
            depth_left_branch=int(depth_left),
            depth_right_branch=int(depth_right),
            parent=optional_address(parent),
            left_child=optional_address(left_child),
            right_child=optional_address(right_child),
            is_point_changed=bool(is_point_changed),
            unbalanced_allowance=bool(unbalanced_allowance),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeRecord":
        return cls(**data)


__all__ = [
    "NODE_SET_OUTPUT_TYPES",
    "NODE_SET_SIGNATURE",
    "NodeRecord",
    "ZERO_ADDRESS",
    "normalize_address",
    "optional_address",
]
