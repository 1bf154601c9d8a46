"""Глобальные настройки premium-подсистемы.

Настройки разделены по доменам (сеть, БД, кеш, статус, реферальное дерево и т.д.),
чтобы сервисы получали только свою секцию и не зависели от остальной конфигурации.
Вся конфигурация загружается из переменных окружения через Pydantic Settings,
вложенные секции задаются через разделитель ``__`` (``CHAIN__RPC_ENDPOINT``).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ChainSettings(BaseModel):
    """Публичный JSON-RPC узел и адрес реферального контракта."""

    rpc_endpoint: AnyHttpUrl = Field(..., description="HTTP JSON-RPC (Arbitrum One)")
    referral_contract: str = Field(..., description="Адрес контракта с NodeSet(address)")
    chain_id: int = 42161
    request_timeout_sec: PositiveFloat = Field(
        5.0, description="Таймаут одного eth_call"
    )

    @field_validator("referral_contract")
    @classmethod
    def _check_contract(cls, value: str) -> str:
        value = value.strip()
        if not _ADDRESS_RE.match(value):
            raise ValueError("referral_contract должен быть 0x-адресом из 40 hex-символов")
        return value.lower()


class DatabaseSettings(BaseModel):
    """SQLModel + aiosqlite (по умолчанию) и готовность к Postgres."""

    dsn: str = Field(
        "sqlite+aiosqlite:///./database/premium.db",
        description="Строка подключения SQLAlchemy/SQLModel",
    )
    echo: bool = False


class CacheSettings(BaseModel):
    """Настройки кешей (aiocache поддерживает memory / redis)."""

    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 30
    redis_dsn: str | None = None
    tree_reads_enabled: bool = Field(
        True, description="Кешировать чтения узлов при построении дерева"
    )


class PremiumSettings(BaseModel):
    """Политика вычисления premium-статуса."""

    fail_closed: bool = Field(
        True,
        description="При сбое сети/БД отдавать Standard вместо ошибки",
    )
    auto_link_enabled: bool = True
    deadline_sec: PositiveFloat = 10.0


class ReferralTreeSettings(BaseModel):
    """Ограничения обхода бинарного реферального дерева."""

    default_max_depth: int = Field(5, ge=0)
    max_depth_limit: int = Field(10, ge=0)
    user_tree_depth: int = Field(3, ge=0)
    max_concurrency: PositiveInt = 8
    deadline_sec: PositiveFloat = 20.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "ReferralTreeSettings":
        if self.default_max_depth > self.max_depth_limit:
            raise ValueError("default_max_depth не может превышать max_depth_limit")
        if self.user_tree_depth > self.max_depth_limit:
            raise ValueError("user_tree_depth не может превышать max_depth_limit")
        return self


class SecuritySettings(BaseModel):
    """JWT для авторизации запросов к API."""

    jwt_secret: SecretStr = Field(..., description="Секрет для подписания JWT")
    jwt_algorithm: str = "HS256"
    jwt_ttl_minutes: int = 60


class ApiSettings(BaseModel):
    """Адрес, на котором слушает HTTP API."""

    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False


class AppSettings(BaseSettings):
    """Главный контейнер настроек."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    chain: ChainSettings
    database: DatabaseSettings = DatabaseSettings()
    cache: CacheSettings = CacheSettings()
    premium: PremiumSettings = PremiumSettings()
    tree: ReferralTreeSettings = ReferralTreeSettings()
    security: SecuritySettings
    api: ApiSettings = ApiSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def is_production(self) -> bool:
        """True, если сервис запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Значения кэшируются, поэтому инициализация .env происходит ровно один раз
    за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()  # type: ignore[call-arg]
    return _settings


def reset_settings() -> None:
    """Сбрасывает синглтон (нужно тестам, меняющим окружение)."""

    global _settings
    _settings = None


__all__ = [
    "ApiSettings",
    "AppSettings",
    "CacheSettings",
    "ChainSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "PremiumSettings",
    "ReferralTreeSettings",
    "SecuritySettings",
    "get_settings",
    "reset_settings",
]
