"""
供应商指派与投产流转

- 批准时决定报价进入 approved 还是直接 in_production
- 员工按明细或按品类指派供应商，所有明细指派完成后报价投产并创建任务
- 任务只在投产时创建，每个明细最多一个未取消的任务
"""
from typing import Dict, List, Optional, Set, Tuple
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.middleware import (
    ConcurrencyConflict, InvalidStateTransition, NotFoundError, ValidationError
)
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.quote import Quote, QuoteItem
from brokerage.models.supplier import SupplierJob, SupplierPrice
from brokerage.models.user import User
from brokerage.schemas.job import AssignmentResult, SupplierJobResponse
from brokerage.schemas.supplier import AssignSupplierToCategoryRequest, AssignSupplierToItemRequest
from brokerage.services.activity_service import log_activity
from brokerage.services.notification_service import (
    NotificationEvent, Notifier, default_notifier, dispatch_notifications
)
from brokerage.services.state_machine import JobStatus, QuoteStatus, apply_guarded_status


# 允许修改明细供应商的报价状态
ASSIGNABLE_STATUSES = (
    QuoteStatus.DRAFT, QuoteStatus.SENT, QuoteStatus.APPROVED, QuoteStatus.IN_PRODUCTION
)

# (明细, 供应商, 成本, 交付天数)
Assignment = Tuple[QuoteItem, UUID, Decimal, int]


class AssignmentService:
    """供应商指派服务"""

    def __init__(self, notifier: Notifier = None):
        self.notifier = notifier or default_notifier

    # ==================== 内部工具 ====================

    @staticmethod
    def _all_assigned(items: List[QuoteItem]) -> bool:
        return bool(items) and all(
            item.supplier_id is not None and item.supplier_cost is not None
            for item in items
        )

    async def _load_quote(self, db: AsyncSession, quote_id: UUID) -> Quote:
        result = await db.execute(
            select(Quote).where(Quote.id == quote_id).execution_options(populate_existing=True)
        )
        quote = result.scalars().first()
        if not quote:
            raise NotFoundError("报价单", quote_id)
        return quote

    async def _load_items(self, db: AsyncSession, quote_id: UUID) -> List[QuoteItem]:
        result = await db.execute(
            select(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .order_by(QuoteItem.sort_order)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _ensure_supplier(self, db: AsyncSession, supplier_id: UUID) -> User:
        result = await db.execute(
            select(User).where(User.id == supplier_id, User.role == Role.SUPPLIER)
        )
        supplier = result.scalars().first()
        if not supplier:
            raise NotFoundError("供应商", supplier_id)
        return supplier

    async def _active_job_item_ids(self, db: AsyncSession, quote_id: UUID) -> Set[UUID]:
        result = await db.execute(
            select(SupplierJob.quote_item_id).where(
                SupplierJob.quote_id == quote_id,
                SupplierJob.is_cancelled.is_(False)
            )
        )
        return set(result.scalars().all())

    async def _standing_terms(
        self,
        db: AsyncSession,
        supplier_id: UUID,
        sku_id: UUID
    ) -> Optional[SupplierPrice]:
        result = await db.execute(
            select(SupplierPrice).where(
                SupplierPrice.supplier_id == supplier_id,
                SupplierPrice.sku_id == sku_id
            )
        )
        return result.scalars().first()

    async def _create_jobs(
        self,
        db: AsyncSession,
        quote: Quote,
        items: List[QuoteItem],
        events: List[NotificationEvent]
    ) -> List[SupplierJob]:
        """为明细创建 pending 任务，成本与交付天数取自明细快照"""
        jobs = []
        for item in items:
            job = SupplierJob(
                quote_id=quote.id,
                quote_item_id=item.id,
                supplier_id=item.supplier_id,
                customer_id=quote.customer_id,
                sku_id=item.sku_id,
                quantity=item.quantity,
                price_per_unit=item.supplier_cost,
                promised_delivery_days=item.delivery_days,
                status=JobStatus.PENDING,
                is_cancelled=False
            )
            db.add(job)
            jobs.append(job)

        try:
            await db.flush()
        except IntegrityError as e:
            logger.warning(f"报价 {quote.id} 创建任务冲突: {e}")
            raise ConcurrencyConflict("明细已存在未取消的供应商任务", details={"quote_id": str(quote.id)})

        for job in jobs:
            events.append(("job.created", {
                "job_id": str(job.id), "supplier_id": str(job.supplier_id), "quote_id": str(quote.id)
            }))
        return jobs

    async def _promote_to_production(
        self,
        db: AsyncSession,
        quote: Quote,
        items: List[QuoteItem],
        actor_id: UUID,
        events: List[NotificationEvent]
    ) -> List[SupplierJob]:
        """报价投产：守卫状态流转并为尚无任务的明细创建任务"""
        await apply_guarded_status(db, quote, quote.status, QuoteStatus.IN_PRODUCTION)

        covered = await self._active_job_item_ids(db, quote.id)
        jobs = await self._create_jobs(db, quote, [i for i in items if i.id not in covered], events)

        log_activity(db, actor_id, "quote_in_production", {"quote_id": quote.id, "jobs_count": len(jobs)})
        events.append(("quote.in_production", {"quote_id": str(quote.id), "jobs_count": len(jobs)}))
        return jobs

    # ==================== 批准 ====================

    async def resolve_approval(
        self,
        db: AsyncSession,
        quote: Quote,
        items: List[QuoteItem],
        actor_id: UUID,
        events: List[NotificationEvent]
    ) -> List[SupplierJob]:
        """
        批准报价（在调用方事务内）

        自动投产且全部明细已指派供应商：sent -> in_production，每个明细一个任务；
        否则：sent -> approved，不创建任务，等待员工指派。
        """
        log_activity(db, actor_id, "quote_approved", {"quote_id": quote.id})
        events.append(("quote.approved", {"quote_id": str(quote.id)}))

        if quote.auto_production and self._all_assigned(items):
            return await self._promote_to_production(db, quote, items, actor_id, events)

        await apply_guarded_status(db, quote, QuoteStatus.SENT, QuoteStatus.APPROVED)
        return []

    # ==================== 指派 ====================

    async def _apply_assignments(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote: Quote,
        assignments: List[Assignment],
        events: List[NotificationEvent]
    ) -> AssignmentResult:
        """写入明细指派，并按报价状态决定是否投产/建任务"""
        if quote.status not in ASSIGNABLE_STATUSES:
            raise InvalidStateTransition("报价单", quote.status, "supplier_assigned")

        covered = await self._active_job_item_ids(db, quote.id)
        for item, supplier_id, cost, days in assignments:
            if item.id in covered:
                raise ValidationError(
                    "该明细已有进行中的供应商任务，请先取消任务再重新指派",
                    {"quote_item_id": str(item.id)}
                )
            if cost is None or cost <= 0:
                raise ValidationError("供应商单价必须为正数", {"quote_item_id": str(item.id)})
            if days is None or days < 1:
                raise ValidationError("交付天数至少为1天", {"quote_item_id": str(item.id)})

            item.supplier_id = supplier_id
            item.supplier_cost = cost
            item.delivery_days = days

        await db.flush()

        log_activity(db, policy.user_id, "supplier_assigned", {
            "quote_id": quote.id, "items_count": len(assignments)
        })

        created: List[SupplierJob] = []
        if quote.status == QuoteStatus.APPROVED:
            items = await self._load_items(db, quote.id)
            if self._all_assigned(items):
                created = await self._promote_to_production(db, quote, items, policy.user_id, events)
        elif quote.status == QuoteStatus.IN_PRODUCTION:
            created = await self._create_jobs(db, quote, [a[0] for a in assignments], events)

        return AssignmentResult(
            quote_id=quote.id,
            quote_status=quote.status,
            updated_item_ids=[a[0].id for a in assignments],
            created_jobs=[SupplierJobResponse.model_validate(job) for job in created]
        )

    async def assign_supplier_to_item(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        item_id: UUID,
        data: AssignSupplierToItemRequest
    ) -> AssignmentResult:
        """为单个明细指派供应商，成本与交付天数缺省取供应商长期报价"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_assign_suppliers", "只有员工可以指派供应商")

            quote = await self._load_quote(db, quote_id)
            items = {item.id: item for item in await self._load_items(db, quote_id)}
            item = items.get(item_id)
            if item is None:
                raise NotFoundError("报价明细", item_id)

            await self._ensure_supplier(db, data.supplier_id)

            cost, days = data.supplier_cost, data.delivery_days
            if cost is None or days is None:
                standing = await self._standing_terms(db, data.supplier_id, item.sku_id)
                if standing is None:
                    raise ValidationError(
                        "供应商没有该SKU的长期报价，请填写成本和交付天数",
                        {"supplier_id": str(data.supplier_id), "sku_id": str(item.sku_id)}
                    )
                cost = cost if cost is not None else standing.price_per_unit
                days = days if days is not None else standing.delivery_days

            result = await self._apply_assignments(
                db, policy, quote, [(item, data.supplier_id, cost, days)], events
            )

            await db.commit()
            logger.info(f"报价 {quote_id} 明细 {item_id} 指派供应商 {data.supplier_id}，报价状态: {result.quote_status}")
        except Exception as e:
            await db.rollback()
            logger.error(f"指派供应商失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return result

    async def assign_supplier_to_category(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        data: AssignSupplierToCategoryRequest
    ) -> AssignmentResult:
        """按品类批量指派：全部明细更新与任务创建在同一事务内"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_assign_suppliers", "只有员工可以指派供应商")

            quote = await self._load_quote(db, quote_id)
            items: Dict[UUID, QuoteItem] = {item.id: item for item in await self._load_items(db, quote_id)}
            await self._ensure_supplier(db, data.supplier_id)

            seen: Set[UUID] = set()
            assignments: List[Assignment] = []
            for entry in data.items:
                item = items.get(entry.quote_item_id)
                if item is None:
                    raise NotFoundError("报价明细", entry.quote_item_id)
                if entry.quote_item_id in seen:
                    raise ValidationError("明细重复", {"quote_item_id": str(entry.quote_item_id)})
                seen.add(entry.quote_item_id)
                assignments.append((item, data.supplier_id, entry.price, entry.delivery_days))

            result = await self._apply_assignments(db, policy, quote, assignments, events)

            await db.commit()
            logger.info(
                f"报价 {quote_id} 按品类指派供应商 {data.supplier_id}，"
                f"{len(assignments)} 个明细，新建 {len(result.created_jobs)} 个任务"
            )
        except Exception as e:
            await db.rollback()
            logger.error(f"按品类指派供应商失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return result


# 创建全局服务实例
assignment_service = AssignmentService()
