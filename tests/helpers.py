"""Фейки и конструкторы данных для тестов."""

from __future__ import annotations

import itertools
from typing import Iterable

from premium.services.chain.node_record import NodeRecord
from premium.services.exceptions import ChainUnavailable

_start_times = itertools.count(1_700_000_000)


def wallet(n: int) -> str:
    """Детерминированный адрес кошелька."""

    return "0x" + f"{n:040x}"


def node(
    address: str,
    *,
    left: str | None = None,
    right: str | None = None,
    parent: str | None = None,
    balance: int = 0,
    point: int = 0,
) -> NodeRecord:
    return NodeRecord(
        address=address,
        start_time=next(_start_times),
        balance=balance,
        point=point,
        parent=parent,
        left_child=left,
        right_child=right,
    )


class FakeNodeReader:
    """NodeReader в памяти: незарегистрированные адреса отдаются как absent."""

    def __init__(self, records: Iterable[NodeRecord] = ()) -> None:
        self.records = {record.address: record for record in records}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def add(self, record: NodeRecord) -> NodeRecord:
        self.records[record.address] = record
        return record

    async def read(self, address: str) -> NodeRecord:
        address = address.lower()
        self.calls.append(address)
        if address in self.failing:
            raise ChainUnavailable(f"rpc down for {address}")
        return self.records.get(address, NodeRecord.absent(address))


class FailingStore:
    """Хранилище, у которого «упала» БД."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def find_by_wallet(self, wallet: str):
        raise self.error

    async def find_by_profile(self, profile_id: str):
        raise self.error

    async def create(self, wallet: str, profile_id: str):
        raise self.error
