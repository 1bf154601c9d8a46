"""aiocache для повторных чтений NodeSet.

Backend выбирается настройкой ``CACHE__BACKEND``: ``memory`` живёт внутри
процесса, ``redis`` позволяет нескольким воркерам API делить прочитанные узлы.
Кешируются только удачные чтения; статус и привязка кеш не используют.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from aiocache import SimpleMemoryCache, caches
from aiocache.base import BaseCache
from loguru import logger

try:
    from aiocache import RedisCache
except (ImportError, AttributeError):  # pragma: no cover - optional dependency
    RedisCache = None  # type: ignore[assignment]

from config.settings import CacheSettings, get_settings

KEY_PREFIX = "premium"

_configured = False


def configure_cache(cache_settings: CacheSettings | None = None) -> None:
    """Регистрирует алиас ``default`` один раз за процесс."""

    global _configured
    if _configured:
        return

    cache_settings = cache_settings or get_settings().cache
    if cache_settings.backend == "redis":
        backend = _redis_backend(cache_settings.redis_dsn)
    else:
        backend = {"cache": SimpleMemoryCache}
    caches.set_config({"default": {**backend, "ttl": cache_settings.ttl_seconds}})
    _configured = True
    logger.debug(
        "aiocache: backend {backend}, ttl {ttl}s",
        backend=cache_settings.backend,
        ttl=cache_settings.ttl_seconds,
    )


def get_cache(alias: str = "default") -> BaseCache:
    configure_cache()
    return caches.get(alias)


def cache_key(*parts: str) -> str:
    """Ключ вида ``premium:<part>:<part>``."""

    return ":".join((KEY_PREFIX, *parts))


async def cached_call(key: str, ttl: int, factory: Callable[[], Awaitable[Any]]) -> Any:
    """Значение из кеша, иначе результат ``factory``.

    Исключения factory пробрасываются как есть и в кеш не попадают. Сбой самого
    кеша (например, недоступный Redis) только логируется: значение берётся из
    ``factory`` напрямую.
    """

    cache = get_cache()
    try:
        value = await cache.get(key)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Кеш недоступен, чтение {key} в обход: {error!r}", key=key, error=exc)
        return await factory()
    if value is not None:
        return value
    value = await factory()
    try:
        await cache.set(key, value, ttl=ttl)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Не удалось записать {key} в кеш: {error!r}", key=key, error=exc)
    return value


async def clear_cache(alias: str = "default") -> None:
    await get_cache(alias).clear()


def _redis_backend(dsn: str | None) -> dict[str, Any]:
    if RedisCache is None:
        raise RuntimeError("CACHE__BACKEND=redis требует extra premium-hub[redis]")
    if not dsn:
        raise RuntimeError("CACHE__BACKEND=redis, но CACHE__REDIS_DSN не указан")
    parsed = urlparse(dsn)
    if parsed.scheme not in {"redis", "rediss"}:
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    db_part = parsed.path.strip("/")
    return {
        "cache": RedisCache,
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": int(db_part) if db_part.isdigit() else 0,
        "ssl": parsed.scheme == "rediss",
    }


__all__ = ["cache_key", "cached_call", "clear_cache", "configure_cache", "get_cache"]
