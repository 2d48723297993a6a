import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from .. import __version__
from .config import Settings, get_settings
from .database import create_db_engine, init_db
from .errors import CipherVaultError, Unauthenticated
from .repositories.objects import create_object_store
from .routers import auth, data

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


async def handle_service_error(request: Request, exc: CipherVaultError) -> JSONResponse:
    if exc.status_code >= 500:
        # 后端的原始报错只写日志，不返回给客户端
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        detail = exc.code
    else:
        detail = exc.message

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": detail},
        headers=headers,
    )


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s -> %s (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    object_store=None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 启动时建表，并确保存储桶存在 (只做一次)
        init_db(app.state.engine)
        app.state.object_store.ensure_bucket()
        logger.info("%s started", settings.PROJECT_NAME)
        yield
        app.state.engine.dispose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=__version__,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine or create_db_engine(settings)
    app.state.object_store = object_store or create_object_store(settings)

    app.add_exception_handler(CipherVaultError, handle_service_error)
    app.middleware("http")(log_requests)

    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(data.router, prefix=settings.API_V1_STR, tags=["Data"])

    @app.get("/ping")
    def ping():
        return {}

    return app


def run() -> None:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "ciphervault.server.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
    )


if __name__ == "__main__":
    run()
