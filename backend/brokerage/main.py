"""
印刷经纪订单管理服务入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from brokerage.api.v1.router import api_router
from brokerage.core.config import settings
from brokerage.core.database import init_db
from brokerage.core.middleware import setup_error_handling


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info(f"{settings.APP_NAME} 启动完成 (环境: {settings.ENVIRONMENT})")
    yield
    logger.info(f"{settings.APP_NAME} 已停止")


def create_app(configure_logs: bool = True) -> FastAPI:
    """创建FastAPI应用"""
    application = FastAPI(
        title="印刷经纪订单管理API",
        description="报价生命周期、供应商评分指派与履约跟踪",
        version="1.0.0",
        lifespan=lifespan
    )

    setup_error_handling(application, configure_logs=configure_logs)
    application.include_router(api_router, prefix="/api/v1")

    @application.get("/health", tags=["系统"])
    async def health_check():
        """健康检查"""
        return {"status": "healthy", "app": settings.APP_NAME}

    return application


app = create_app()
