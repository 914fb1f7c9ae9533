"""
编号分配器

编号与被编号的记录在同一事务内分配：对计数器行做原子自增并 RETURNING，
事务回滚则编号不视为已消耗。不再使用"先取号、再插入"的两步方式。
"""
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.config import settings
from brokerage.core.middleware import ConcurrencyConflict
from brokerage.models.system import SequenceCounter


QUOTE_COUNTER = "quote_number"
CUSTOMER_COUNTER = "customer_number"


def _initial_values() -> dict:
    # 存储的是"最后分配的值"，首次分配得到起始值
    return {
        QUOTE_COUNTER: settings.QUOTE_NUMBER_START - 1,
        CUSTOMER_COUNTER: settings.CUSTOMER_NUMBER_START - 1,
    }


async def seed_counters(db: AsyncSession) -> None:
    """初始化缺失的计数器（幂等）"""
    existing = set((await db.execute(select(SequenceCounter.name))).scalars().all())
    for name, value in _initial_values().items():
        if name not in existing:
            db.add(SequenceCounter(name=name, value=value))
    await db.flush()


async def allocate(db: AsyncSession, counter_name: str) -> int:
    """
    在调用方事务内分配下一个编号

    唯一、单调不减、允许空号。调用方必须在同一事务内写入被编号的记录。
    """
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.name == counter_name)
        .values(value=SequenceCounter.value + 1)
        .returning(SequenceCounter.value)
        .execution_options(synchronize_session=False)
    )
    value = (await db.execute(stmt)).scalar_one_or_none()
    if value is not None:
        return value

    # 计数器尚未初始化
    start = _initial_values().get(counter_name, 0) + 1
    db.add(SequenceCounter(name=counter_name, value=start))
    try:
        await db.flush()
    except IntegrityError as e:
        logger.warning(f"计数器 {counter_name} 并发初始化冲突: {e}")
        raise ConcurrencyConflict(f"编号计数器 {counter_name} 初始化冲突，请重试")
    return start
