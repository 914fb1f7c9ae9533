"""
数据库连接与会话管理
"""
from typing import AsyncGenerator

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from brokerage.core.config import settings


Base = declarative_base()

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, pool_pre_ping=True)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI依赖：每个请求一个会话"""
    async with async_session_maker() as session:
        yield session


async def init_db(target: AsyncEngine = None) -> None:
    """
    创建数据库表并初始化编号计数器

    计数器需在并发创建前存在，编号分配只做原子自增。
    """
    from brokerage import models  # noqa: F401  注册所有模型
    from brokerage.services.sequence_allocator import seed_counters

    target = target or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(target, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await seed_counters(session)
        await session.commit()

    logger.info("数据库表与编号计数器初始化完成")
