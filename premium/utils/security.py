"""JWT-утилиты: токен подтверждает, каким кошельком владеет вызывающий."""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from config.settings import get_settings
from premium.services.chain.node_record import normalize_address
from premium.services.exceptions import InvalidAddress


def issue_session_token(wallet_address: str, ttl_minutes: int | None = None) -> str:
    """Выдаёт короткоживущий JWT, ``sub`` = адрес кошелька."""

    security = get_settings().security
    ttl = ttl_minutes or security.jwt_ttl_minutes
    now = int(time.time())
    payload = {
        "sub": normalize_address(wallet_address),
        "iat": now,
        "exp": now + ttl * 60,
    }
    return jwt.encode(payload, security.jwt_secret.get_secret_value(), algorithm=security.jwt_algorithm)


def decode_session_token(token: str) -> Dict[str, Any]:
    """Валидирует JWT и возвращает payload с нормализованным ``sub``."""

    security = get_settings().security
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret.get_secret_value(),
            algorithms=[security.jwt_algorithm],
        )
        payload["sub"] = normalize_address(payload.get("sub"))
    except (InvalidTokenError, InvalidAddress) as exc:
        raise ValueError("Недействительный токен сессии") from exc
    return payload


__all__ = ["issue_session_token", "decode_session_token"]
