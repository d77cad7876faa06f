#!/usr/bin/env python3
# main.py
"""
Главная точка входа EasyMove.
Запускает HTTP API заказов трансферов через uvicorn.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from easymove.config import settings
from easymove.common.logger import setup_logging, log_info, log_error
from easymove.common.constants import TypeMsg


# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_api() -> None:
    """Запускает HTTP API (инфраструктура поднимается в lifespan приложения)."""
    import uvicorn

    await log_info(
        f"Запуск EasyMove API на {settings.deployment.API_HOST}:{settings.deployment.API_PORT} "
        f"(store={settings.system.STORE_BACKEND})...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "easymove.api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("EasyMove API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main() -> None:
    """Главная функция запуска."""
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"EasyMove v{settings.system.VERSION} (env={settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )

    api_task = asyncio.create_task(run_api())
    _running_tasks = [api_task]

    try:
        await api_task
    except asyncio.CancelledError:
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}")
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
