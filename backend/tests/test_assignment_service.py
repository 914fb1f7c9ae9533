"""
供应商指派与投产流转测试
"""
import pytest
from decimal import Decimal

from brokerage.core.middleware import (
    AuthorizationError, InvalidStateTransition, NotFoundError, ValidationError
)
from brokerage.schemas.supplier import (
    AssignSupplierToCategoryRequest, AssignSupplierToItemRequest, CategoryAssignmentEntry
)
from brokerage.services.assignment_service import assignment_service
from brokerage.services.job_service import job_service
from brokerage.services.quote_service import quote_service
from brokerage.services.state_machine import JobStatus, QuoteStatus


def _assign(supplier, cost="6.00", days=3):
    return AssignSupplierToItemRequest(supplier_id=supplier.id, supplier_cost=Decimal(cost), delivery_days=days)


class TestApproval:
    """批准报价测试"""

    @pytest.mark.asyncio
    async def test_auto_production_creates_one_job_per_item(
        self, db_session, customer, staff, supplier, factory
    ):
        """测试全部明细已指派且自动投产：进入 in_production，每个明细一个 pending 任务"""
        skus = [await factory.create_sku(db_session) for _ in range(3)]

        quote = await factory.create_production_quote(
            db_session, customer, staff, supplier, skus, supplier_cost="7.25", delivery_days=4
        )

        assert quote.status == QuoteStatus.IN_PRODUCTION
        jobs = await factory.list_jobs(db_session, quote.id)
        assert len(jobs) == 3
        assert {job.quote_item_id for job in jobs} == {item.id for item in quote.items}
        for job in jobs:
            assert job.status == JobStatus.PENDING
            assert job.is_cancelled is False
            assert job.supplier_id == supplier.id
            assert job.customer_id == customer.id
            assert job.price_per_unit == Decimal("7.25")
            assert job.promised_delivery_days == 4

    @pytest.mark.asyncio
    async def test_missing_supplier_stays_approved(
        self, db_session, customer, staff, supplier, factory, policy
    ):
        """测试存在未指派明细：进入 approved，不创建任务"""
        skus = [await factory.create_sku(db_session) for _ in range(2)]
        quote = await factory.create_sent_quote(db_session, customer, staff, skus, auto_production=True)
        await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, quote.items[0].id, _assign(supplier)
        )

        approved = await quote_service.approve_quote(db_session, policy(customer), quote.id)

        assert approved.status == QuoteStatus.APPROVED
        assert await factory.list_jobs(db_session, quote.id) == []

    @pytest.mark.asyncio
    async def test_without_auto_production_stays_approved(
        self, db_session, customer, staff, supplier, sku, factory, policy
    ):
        """测试未开启自动投产：即使全部指派也只进入 approved"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku], auto_production=False)
        await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, quote.items[0].id, _assign(supplier)
        )

        approved = await quote_service.approve_quote(db_session, policy(customer), quote.id)

        assert approved.status == QuoteStatus.APPROVED
        assert await factory.list_jobs(db_session, quote.id) == []

    @pytest.mark.asyncio
    async def test_double_approve_fails(self, db_session, customer, staff, sku, factory, policy):
        """测试重复批准失败"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])
        await quote_service.approve_quote(db_session, policy(customer), quote.id)

        with pytest.raises(InvalidStateTransition):
            await quote_service.approve_quote(db_session, policy(customer), quote.id)


class TestManualAssignment:
    """员工指派测试"""

    @pytest.mark.asyncio
    async def test_last_assignment_promotes_approved_quote(
        self, db_session, customer, staff, supplier, other_supplier, factory, policy
    ):
        """测试 approved 报价指派完最后一个明细后投产，任务覆盖全部明细且不重复"""
        skus = [await factory.create_sku(db_session) for _ in range(3)]
        quote = await factory.create_sent_quote(db_session, customer, staff, skus)
        for item in quote.items[:2]:
            await assignment_service.assign_supplier_to_item(
                db_session, policy(staff), quote.id, item.id, _assign(supplier)
            )
        await quote_service.approve_quote(db_session, policy(customer), quote.id)

        result = await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, quote.items[2].id, _assign(other_supplier, "8.00")
        )

        assert result.quote_status == QuoteStatus.IN_PRODUCTION
        assert len(result.created_jobs) == 3
        jobs = await factory.list_jobs(db_session, quote.id)
        assert len(jobs) == 3
        by_item = {job.quote_item_id: job for job in jobs}
        assert by_item[quote.items[2].id].supplier_id == other_supplier.id
        assert by_item[quote.items[0].id].supplier_id == supplier.id

    @pytest.mark.asyncio
    async def test_partial_assignment_keeps_approved(
        self, db_session, customer, staff, supplier, factory, policy
    ):
        """测试仍有未指派明细时保持 approved"""
        skus = [await factory.create_sku(db_session) for _ in range(2)]
        quote = await factory.create_sent_quote(db_session, customer, staff, skus)
        await quote_service.approve_quote(db_session, policy(customer), quote.id)

        result = await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, quote.items[0].id, _assign(supplier)
        )

        assert result.quote_status == QuoteStatus.APPROVED
        assert result.created_jobs == []

    @pytest.mark.asyncio
    async def test_category_assignment(self, db_session, customer, staff, supplier, factory, policy):
        """测试按品类批量指派：明细更新与任务创建一次完成"""
        skus = [await factory.create_sku(db_session, category="宣传册") for _ in range(2)]
        quote = await factory.create_sent_quote(db_session, customer, staff, skus)
        await quote_service.approve_quote(db_session, policy(customer), quote.id)

        request = AssignSupplierToCategoryRequest(
            supplier_id=supplier.id,
            items=[
                CategoryAssignmentEntry(quote_item_id=item.id, price=Decimal("3.50"), delivery_days=5)
                for item in quote.items
            ]
        )
        result = await assignment_service.assign_supplier_to_category(
            db_session, policy(staff), quote.id, request
        )

        assert result.quote_status == QuoteStatus.IN_PRODUCTION
        assert set(result.updated_item_ids) == {item.id for item in quote.items}
        assert len(result.created_jobs) == 2
        assert all(job.price_per_unit == Decimal("3.50") for job in result.created_jobs)
        assert all(job.promised_delivery_days == 5 for job in result.created_jobs)

    @pytest.mark.asyncio
    async def test_category_assignment_is_atomic(
        self, db_session, customer, staff, supplier, factory, policy
    ):
        """测试品类指派中任一明细无效则全部不生效"""
        from uuid import uuid4
        skus = [await factory.create_sku(db_session) for _ in range(2)]
        quote = await factory.create_sent_quote(db_session, customer, staff, skus)
        await quote_service.approve_quote(db_session, policy(customer), quote.id)

        request = AssignSupplierToCategoryRequest(
            supplier_id=supplier.id,
            items=[
                CategoryAssignmentEntry(quote_item_id=quote.items[0].id, price=Decimal("3"), delivery_days=2),
                CategoryAssignmentEntry(quote_item_id=uuid4(), price=Decimal("3"), delivery_days=2),
            ]
        )
        with pytest.raises(NotFoundError):
            await assignment_service.assign_supplier_to_category(db_session, policy(staff), quote.id, request)

        detail = await quote_service.get_quote_detail(db_session, quote.id)
        assert detail.status == QuoteStatus.APPROVED
        assert all(item.supplier_id is None for item in detail.items)

    @pytest.mark.asyncio
    async def test_default_terms_from_standing_price(
        self, db_session, customer, staff, supplier, sku, factory, policy
    ):
        """测试未填写成本时取供应商长期报价"""
        await factory.create_supplier_price(db_session, supplier, sku, "4.40", delivery_days=6)
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])

        await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, quote.items[0].id,
            AssignSupplierToItemRequest(supplier_id=supplier.id)
        )

        detail = await quote_service.get_quote_detail(db_session, quote.id)
        assert detail.items[0].supplier_id == supplier.id
        assert detail.items[0].supplier_cost == Decimal("4.40")
        assert detail.items[0].delivery_days == 6

    @pytest.mark.asyncio
    async def test_missing_terms_rejected(self, db_session, customer, staff, supplier, sku, factory, policy):
        """测试既无长期报价也未填写成本时校验失败"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])

        with pytest.raises(ValidationError):
            await assignment_service.assign_supplier_to_item(
                db_session, policy(staff), quote.id, quote.items[0].id,
                AssignSupplierToItemRequest(supplier_id=supplier.id)
            )

    @pytest.mark.asyncio
    async def test_unknown_supplier(self, db_session, customer, staff, courier, sku, factory, policy):
        """测试指派给非供应商用户"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])

        with pytest.raises(NotFoundError):
            await assignment_service.assign_supplier_to_item(
                db_session, policy(staff), quote.id, quote.items[0].id, _assign(courier)
            )

    @pytest.mark.asyncio
    async def test_only_staff_assigns(self, db_session, customer, staff, supplier, sku, factory, policy):
        """测试只有员工可以指派"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])

        with pytest.raises(AuthorizationError):
            await assignment_service.assign_supplier_to_item(
                db_session, policy(supplier), quote.id, quote.items[0].id, _assign(supplier)
            )

    @pytest.mark.asyncio
    async def test_reassign_requires_cancel(
        self, db_session, customer, staff, supplier, other_supplier, sku, factory, policy
    ):
        """测试已有进行中任务的明细需先取消才能改派，改派后创建新任务"""
        quote = await factory.create_production_quote(db_session, customer, staff, supplier, [sku])
        item_id = quote.items[0].id

        with pytest.raises(ValidationError):
            await assignment_service.assign_supplier_to_item(
                db_session, policy(staff), quote.id, item_id, _assign(other_supplier)
            )

        job = (await factory.list_jobs(db_session, quote.id))[0]
        await job_service.cancel_job(db_session, policy(staff), job.id, "供应商停产")

        result = await assignment_service.assign_supplier_to_item(
            db_session, policy(staff), quote.id, item_id, _assign(other_supplier, "9.00")
        )

        assert result.quote_status == QuoteStatus.IN_PRODUCTION
        assert len(result.created_jobs) == 1
        assert result.created_jobs[0].supplier_id == other_supplier.id
        jobs = await factory.list_jobs(db_session, quote.id)
        assert len(jobs) == 2
        assert sum(1 for j in jobs if not j.is_cancelled) == 1

    @pytest.mark.asyncio
    async def test_rejected_quote_not_assignable(
        self, db_session, customer, staff, supplier, sku, factory, policy
    ):
        """测试已拒绝报价不能指派"""
        quote = await factory.create_sent_quote(db_session, customer, staff, [sku])
        await quote_service.reject_quote(db_session, policy(customer), quote.id, "不需要")

        with pytest.raises(InvalidStateTransition):
            await assignment_service.assign_supplier_to_item(
                db_session, policy(staff), quote.id, quote.items[0].id, _assign(supplier)
            )
