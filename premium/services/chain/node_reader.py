"""Чтение узлов реферального контракта через публичный JSON-RPC.

ContractNodeReader делает ровно одну вещь: ``eth_call`` к view-функции
``NodeSet(address)`` и декодирование ответа в :class:`NodeRecord`.
Любая транспортная проблема превращается в :class:`ChainUnavailable`,
а «узел не зарегистрирован» возвращается как запись с ``exists = False``.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Protocol

import aiohttp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector
from loguru import logger

from config.settings import get_settings
from premium.services.chain.node_record import (
    NODE_SET_OUTPUT_TYPES,
    NODE_SET_SIGNATURE,
    NodeRecord,
    normalize_address,
)
from premium.services.exceptions import ChainUnavailable
from premium.utils.cache import cache_key, cached_call

NODE_SET_SELECTOR = function_signature_to_4byte_selector(NODE_SET_SIGNATURE)


class NodeReader(Protocol):
    """Всё, что ядру нужно от сети: точечное чтение узла по адресу."""

    async def read(self, address: str) -> NodeRecord: ...


def encode_node_set_call(address: str) -> str:
    """Calldata для ``NodeSet(address)``."""

    payload = NODE_SET_SELECTOR + encode(["address"], [address])
    return "0x" + payload.hex()


def decode_node_set_result(address: str, result: Any) -> NodeRecord:
    """Декодирует hex-ответ ``eth_call`` в запись узла."""

    if not isinstance(result, str) or not result.startswith("0x") or len(result) <= 2:
        raise ChainUnavailable(f"Пустой или некорректный ответ NodeSet для {address}")
    try:
        values = decode(list(NODE_SET_OUTPUT_TYPES), bytes.fromhex(result[2:]))
        return NodeRecord.from_node_set(address, values)
    except (DecodingError, ValueError) as exc:
        raise ChainUnavailable(f"Не удалось декодировать NodeSet для {address}: {exc}") from exc


class ContractNodeReader:
    """Лёгкий JSON-RPC клиент поверх aiohttp для одного контракта."""

    def __init__(
        self,
        *,
        rpc_endpoint: str | None = None,
        contract_address: str | None = None,
        request_timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if rpc_endpoint is None or contract_address is None or request_timeout is None:
            chain = get_settings().chain
            rpc_endpoint = rpc_endpoint or str(chain.rpc_endpoint)
            contract_address = contract_address or chain.referral_contract
            request_timeout = request_timeout or chain.request_timeout_sec
        self._rpc_endpoint = rpc_endpoint
        self._contract = normalize_address(contract_address)
        self._timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @property
    def contract_address(self) -> str:
        return self._contract

    async def start(self) -> None:
        """Инициализирует HTTP session (вызывается лениво при первом чтении)."""

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
            logger.info(
                "ContractNodeReader готов: RPC {rpc}, контракт {contract}",
                rpc=self._rpc_endpoint,
                contract=self._contract,
            )

    async def close(self) -> None:
        """Чисто закрывает собственную HTTP-сессию."""

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Выполняет JSON-RPC вызов, любые сбои транспорта -> ChainUnavailable."""

        await self.start()
        assert self._session is not None
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self._session.post(self._rpc_endpoint, json=payload) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise ChainUnavailable(f"RPC {method} завершился с HTTP {resp.status}: {text}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ChainUnavailable(f"RPC {method} недоступен: {exc!r}") from exc
        if not isinstance(data, dict):
            raise ChainUnavailable(f"RPC {method} вернул не-объект: {data!r}")
        if data.get("error"):
            raise ChainUnavailable(f"RPC ошибка {method}: {data['error']}")
        return data.get("result")

    async def read(self, address: str) -> NodeRecord:
        """Читает ``NodeSet(address)`` на последнем блоке."""

        normalized = normalize_address(address)
        call = {"to": self._contract, "data": encode_node_set_call(normalized)}
        result = await self.rpc_call("eth_call", [call, "latest"])
        record = decode_node_set_result(normalized, result)
        logger.debug(
            "NodeSet {wallet}: exists={exists}",
            wallet=normalized,
            exists=record.exists,
        )
        return record


class CachedNodeReader:
    """Best-effort кеш поверх любого NodeReader.

    Используется только для построения дерева: статус и привязка всегда читают
    сеть заново. Ошибки чтения не кешируются.
    """

    def __init__(self, reader: NodeReader, *, ttl: int, namespace: str = "node") -> None:
        self._reader = reader
        self._ttl = ttl
        self._namespace = namespace

    async def read(self, address: str) -> NodeRecord:
        normalized = normalize_address(address)

        async def _load() -> dict[str, Any]:
            record = await self._reader.read(normalized)
            return record.as_dict()

        data = await cached_call(cache_key(self._namespace, normalized), self._ttl, _load)
        return NodeRecord.from_dict(data)


__all__ = [
    "CachedNodeReader",
    "ContractNodeReader",
    "NODE_SET_SELECTOR",
    "NodeReader",
    "decode_node_set_result",
    "encode_node_set_call",
]
