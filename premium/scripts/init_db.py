"""Утилита для первичной инициализации базы данных."""

from __future__ import annotations

import asyncio

from premium.db import init_db
from premium.logging_config import setup_logging


def main() -> None:
    setup_logging()
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
