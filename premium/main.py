"""Entry point: HTTP API premium-подсистемы."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import get_settings
from premium.logging_config import setup_logging
from premium.web.app import app


def main() -> None:
    settings = get_settings()
    setup_logging(json=settings.logging.json_format, level=settings.logging.level)
    logger.info(
        "Запуск API в окружении {env} на {host}:{port}",
        env=settings.environment,
        host=settings.api.host,
        port=settings.api.port,
    )
    uvicorn.run(app, host=settings.api.host, port=settings.api.port, log_level="warning")


if __name__ == "__main__":
    main()
