"""
编号分配器测试
"""
import asyncio
import pytest
from sqlalchemy import delete, select

from brokerage.core.config import settings
from brokerage.models.system import SequenceCounter
from brokerage.schemas.quote import QuoteCreateRequest, QuoteItemRequest
from brokerage.services import sequence_allocator
from brokerage.services.quote_service import quote_service


class TestSequenceAllocator:
    """编号分配测试"""

    @pytest.mark.asyncio
    async def test_allocate_sequential(self, db_session):
        """测试编号从起始值开始递增"""
        first = await sequence_allocator.allocate(db_session, sequence_allocator.QUOTE_COUNTER)
        second = await sequence_allocator.allocate(db_session, sequence_allocator.QUOTE_COUNTER)
        await db_session.commit()

        assert first == settings.QUOTE_NUMBER_START
        assert second == first + 1

    @pytest.mark.asyncio
    async def test_counters_are_independent(self, db_session):
        """测试报价编号与客户编号互不影响"""
        quote_no = await sequence_allocator.allocate(db_session, sequence_allocator.QUOTE_COUNTER)
        customer_no = await sequence_allocator.allocate(db_session, sequence_allocator.CUSTOMER_COUNTER)
        await db_session.commit()

        assert quote_no == settings.QUOTE_NUMBER_START
        assert customer_no == settings.CUSTOMER_NUMBER_START

    @pytest.mark.asyncio
    async def test_rollback_does_not_consume(self, db_session):
        """测试事务回滚后编号不视为已消耗"""
        number = await sequence_allocator.allocate(db_session, sequence_allocator.QUOTE_COUNTER)
        await db_session.rollback()

        again = await sequence_allocator.allocate(db_session, sequence_allocator.QUOTE_COUNTER)
        await db_session.commit()
        assert again == number

    @pytest.mark.asyncio
    async def test_missing_counter_initialized(self, db_session):
        """测试计数器缺失时自动初始化"""
        await db_session.execute(delete(SequenceCounter).where(SequenceCounter.name == "adhoc"))
        await db_session.commit()

        value = await sequence_allocator.allocate(db_session, "adhoc")
        await db_session.commit()
        assert value == 1

        stored = (await db_session.execute(
            select(SequenceCounter.value).where(SequenceCounter.name == "adhoc")
        )).scalar_one()
        assert stored == 1

    @pytest.mark.asyncio
    async def test_concurrent_quote_requests_get_distinct_numbers(
        self, session_factory, customer, sku, policy
    ):
        """测试50个并发报价请求得到50个不同的编号"""
        request = QuoteCreateRequest(items=[QuoteItemRequest(sku_id=sku.id, quantity=10)])
        customer_policy = policy(customer)

        async def create_one():
            async with session_factory() as session:
                quote = await quote_service.create_quote_request(session, customer_policy, request)
                return quote.quote_number

        numbers = await asyncio.gather(*[create_one() for _ in range(50)])

        assert len(numbers) == 50
        assert len(set(numbers)) == 50
        assert min(numbers) == settings.QUOTE_NUMBER_START
