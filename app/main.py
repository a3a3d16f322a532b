# app/main.py
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.deps import general_rate_limit
from app.core.errors import register_error_handlers
from app.core.security import validate_signing_keys
from app.api.v1.router import api_router
from app.db.session import engine
from app.services.scheduler import lifespan_scheduler  # lifespan（排程）

# Monitoring
import sentry_sdk
from prometheus_fastapi_instrumentator import Instrumentator

setup_logging()


def create_app() -> FastAPI:
    # 金鑰檢查：設定錯誤直接啟動失敗
    validate_signing_keys()

    # 啟用 lifespan（內含 APScheduler：過期 token 清理排程）
    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan_scheduler,
        # 全站 IP 限流
        dependencies=[Depends(general_rate_limit)],
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Sentry 初始化（SENTRY_DSN 未設定就略過）----
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            environment=settings.SENTRY_ENV,
        )

    # ---- Prometheus /metrics ----
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    # 統一錯誤處理
    register_error_handlers(app)

    # === API 路由 ===
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # 健康檢查（ops）
    @app.get("/healthz", tags=["ops"])
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", tags=["ops"])
    async def readyz():
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Readiness probe failed: database unreachable")
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True}

    logger.info("Application initialized", env=settings.ENV)
    return app


# Uvicorn 進入點
app = create_app()
