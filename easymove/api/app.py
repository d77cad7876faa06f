# easymove/api/app.py
"""
FastAPI приложение EasyMove.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from easymove.api.dependencies import (
    close_dependencies,
    get_services,
    init_dependencies,
    is_initialized,
)
from easymove.api.routes import router
from easymove.common.constants import TypeMsg
from easymove.common.exceptions import DomainError
from easymove.common.logger import log_error, log_info, setup_logging
from easymove.config import settings


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл приложения."""
    setup_logging()
    await log_info(
        f"{settings.system.PROJECT_NAME} API запускается (env={settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )

    # Сервисы могли быть установлены заранее (тесты)
    owns_dependencies = not is_initialized()
    if owns_dependencies:
        services = await init_dependencies(settings)
        if (
            settings.system.STORE_BACKEND == "memory"
            and settings.system.RUN_DEV_MODE
            and settings.system.SEED_DEMO_USERS
        ):
            from easymove.core.users.seed import seed_demo_users
            await seed_demo_users(services.users)

    yield

    if owns_dependencies:
        await close_dependencies()
    await log_info("API остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ОБРАБОТКА ОШИБОК
# =============================================================================

async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Доменные ошибки отдаются с их HTTP кодом и стабильным кодом ошибки."""
    if exc.status_code >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        await log_info(
            f"{request.method} {request.url.path}: {exc.code} {exc.message}",
            type_msg=TypeMsg.DEBUG,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

def create_app() -> FastAPI:
    """Создаёт FastAPI приложение."""
    application = FastAPI(
        title="EasyMove API",
        description="Заказ трансферов из аэропорта и принятие заказов водителями",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.deployment.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(DomainError, domain_error_handler)
    application.include_router(router, prefix="/api/v1")

    @application.get("/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Проверка здоровья сервиса и его зависимостей."""
        deps: dict[str, str] = {}
        for name, check in get_services().health_checks.items():
            try:
                deps[name] = "healthy" if await check() else "unhealthy"
            except Exception:
                deps[name] = "unhealthy"

        overall = "ok" if all(v == "healthy" for v in deps.values()) else "degraded"
        return {
            "status": overall,
            "service": settings.system.PROJECT_NAME,
            "version": settings.system.VERSION,
            "dependencies": deps,
        }

    return application


app = create_app()
