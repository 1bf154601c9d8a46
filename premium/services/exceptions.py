"""Доменные исключения premium-подсистемы.

Все ошибки, которые сервисы ядра отдают наружу. ``code`` стабилен и
используется HTTP-слоем для ответа клиенту.
"""

from __future__ import annotations


class PremiumServiceError(Exception):
    """Базовое исключение premium-подсистемы."""

    code = "premium_error"


class TransientError(PremiumServiceError):
    """Временный сбой внешней зависимости, вызывающий может повторить запрос."""

    code = "temporarily_unavailable"


class ChainUnavailable(TransientError):
    """JSON-RPC не ответил или ответил мусором.

    Это НЕ то же самое, что «узел не зарегистрирован».
    """

    code = "chain_unavailable"


class StoreUnavailable(TransientError):
    """Хранилище привязок недоступно."""

    code = "store_unavailable"


class LinkError(PremiumServiceError):
    """Нарушение бизнес-правила привязки, повторять бессмысленно."""

    code = "link_rejected"


class WalletNotPremium(LinkError):
    code = "wallet_not_premium"


class WalletAlreadyLinked(LinkError):
    code = "wallet_already_linked"


class ProfileAlreadyLinked(LinkError):
    code = "profile_already_linked"


class LinkPermanent(LinkError):
    """Привязка необратима, отвязка не поддерживается."""

    code = "link_permanent"


class InvalidInput(PremiumServiceError, ValueError):
    """Ошибка вызывающей стороны."""

    code = "invalid_input"


class InvalidAddress(InvalidInput):
    code = "invalid_address"


class InvalidProfileId(InvalidInput):
    code = "invalid_profile_id"


class InvalidTreeDepth(InvalidInput):
    code = "invalid_tree_depth"


class LinkConstraintViolation(PremiumServiceError):
    """Уникальный индекс хранилища отклонил вставку.

    ``field`` — ``wallet_address`` или ``profile_id``.
    """

    code = "constraint_violation"

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Нарушена уникальность поля {field}")


__all__ = [
    "ChainUnavailable",
    "InvalidAddress",
    "InvalidInput",
    "InvalidProfileId",
    "InvalidTreeDepth",
    "LinkConstraintViolation",
    "LinkError",
    "LinkPermanent",
    "PremiumServiceError",
    "ProfileAlreadyLinked",
    "StoreUnavailable",
    "TransientError",
    "WalletAlreadyLinked",
    "WalletNotPremium",
]
