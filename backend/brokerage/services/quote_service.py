"""
报价单管理服务

报价账本（报价单、明细、版本链）与报价状态机。
每个公开方法是一个完整的工作单元：成功则提交一次，任何异常回滚后抛出。
"""
from typing import List, Tuple
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.middleware import AuthorizationError, NotFoundError, ValidationError
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.catalog import Sku
from brokerage.models.quote import Quote, QuoteItem, QuoteAttachment
from brokerage.models.user import User
from brokerage.schemas.quote import (
    QuoteCreateRequest, QuoteItemRequest, QuotePriceRequest,
    QuoteDetailResponse, QuoteItemResponse, QuoteVersionResponse
)
from brokerage.services import sequence_allocator
from brokerage.services.activity_service import log_activity
from brokerage.services.assignment_service import AssignmentService, assignment_service
from brokerage.services.notification_service import (
    NotificationEvent, Notifier, default_notifier, dispatch_notifications
)
from brokerage.services.state_machine import (
    QuoteStatus, apply_guarded_status, ensure_quote_transition
)


class QuoteService:
    """报价单管理服务"""

    def __init__(self, notifier: Notifier = None, assignment: AssignmentService = None):
        self.notifier = notifier or default_notifier
        self.assignment = assignment or assignment_service

    # ==================== 内部工具 ====================

    async def get_quote(self, db: AsyncSession, quote_id: UUID) -> Quote:
        result = await db.execute(
            select(Quote).where(Quote.id == quote_id).execution_options(populate_existing=True)
        )
        quote = result.scalars().first()
        if not quote:
            raise NotFoundError("报价单", quote_id)
        return quote

    async def get_items(self, db: AsyncSession, quote_id: UUID) -> List[QuoteItem]:
        result = await db.execute(
            select(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .order_by(QuoteItem.sort_order)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def ensure_owner_or_staff(policy: AccessPolicy, quote: Quote) -> None:
        if policy.is_staff:
            return
        if policy.actor.role == Role.CUSTOMER and quote.customer_id == policy.user_id:
            return
        raise AuthorizationError("无权访问该报价单")

    async def _ensure_customer(self, db: AsyncSession, customer_id: UUID) -> User:
        result = await db.execute(
            select(User).where(User.id == customer_id, User.role == Role.CUSTOMER)
        )
        customer = result.scalars().first()
        if not customer:
            raise NotFoundError("客户", customer_id)
        return customer

    async def insert_quote_request(
        self,
        db: AsyncSession,
        customer_id: UUID,
        items: List[QuoteItemRequest],
        actor_id: UUID,
        events: List[NotificationEvent]
    ) -> Quote:
        """
        在调用方事务内写入草稿报价单及明细

        编号分配与插入位于同一事务。版本1的 root_quote_id 即自身ID。
        """
        if not items:
            raise ValidationError("报价请求至少包含一个商品")

        sku_ids = {item.sku_id for item in items}
        found = set((await db.execute(select(Sku.id).where(Sku.id.in_(sku_ids)))).scalars().all())
        missing = sku_ids - found
        if missing:
            raise NotFoundError("SKU", sorted(str(s) for s in missing)[0])

        quote_number = await sequence_allocator.allocate(db, sequence_allocator.QUOTE_COUNTER)

        quote_id = uuid4()
        quote = Quote(
            id=quote_id,
            quote_number=quote_number,
            customer_id=customer_id,
            status=QuoteStatus.DRAFT,
            version=1,
            root_quote_id=quote_id,
            auto_production=False
        )
        db.add(quote)

        for idx, item_data in enumerate(items, 1):
            db.add(QuoteItem(
                quote_id=quote_id,
                sku_id=item_data.sku_id,
                quantity=item_data.quantity,
                is_upsell=item_data.is_upsell,
                addon_ids=[str(a) for a in item_data.addon_ids],
                sort_order=idx
            ))

        await db.flush()

        log_activity(db, actor_id, "quote_requested", {
            "quote_id": quote_id, "quote_number": quote_number, "items_count": len(items)
        })
        events.append(("quote.created", {"quote_id": str(quote_id), "quote_number": quote_number}))
        return quote

    # ==================== 报价生命周期 ====================

    async def create_quote_request(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        data: QuoteCreateRequest
    ) -> QuoteDetailResponse:
        """客户发起报价请求，生成草稿报价单"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_request_quotes", "只有客户或员工可以发起报价请求")

            if policy.is_staff:
                if not data.customer_id:
                    raise ValidationError("员工代客户发起报价时必须指定客户")
                customer_id = data.customer_id
            else:
                if data.customer_id and data.customer_id != policy.user_id:
                    raise AuthorizationError("客户只能为自己发起报价请求")
                customer_id = policy.user_id

            await self._ensure_customer(db, customer_id)
            quote = await self.insert_quote_request(db, customer_id, data.items, policy.user_id, events)

            await db.commit()
            logger.info(f"创建报价请求成功: #{quote.quote_number} ({quote.id})")
        except Exception as e:
            await db.rollback()
            logger.error(f"创建报价请求失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.get_quote_detail(db, quote.id)

    async def price_quote(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        data: QuotePriceRequest
    ) -> QuoteDetailResponse:
        """员工为每个明细定价并发送：draft -> sent"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_price_quotes", "只有员工可以为报价定价")

            quote = await self.get_quote(db, quote_id)
            ensure_quote_transition(quote.status, QuoteStatus.SENT)

            items = await self.get_items(db, quote_id)
            if not items:
                raise ValidationError("不能发送空报价")

            items_by_id = {item.id: item for item in items}
            for entry in data.items:
                item = items_by_id.get(entry.item_id)
                if item is None:
                    raise NotFoundError("报价明细", entry.item_id)
                if entry.price < 0:
                    raise ValidationError("价格不能为负数", {"item_id": str(entry.item_id)})
                item.price_at_time_of_quote = entry.price
                if entry.is_upsell is not None:
                    item.is_upsell = entry.is_upsell

            unpriced = [str(item.id) for item in items if item.price_at_time_of_quote is None]
            if unpriced:
                raise ValidationError("所有明细必须定价后才能发送", {"unpriced_items": unpriced})

            await db.flush()
            await apply_guarded_status(
                db, quote, QuoteStatus.DRAFT, QuoteStatus.SENT,
                employee_id=policy.user_id,
                final_value=data.final_value,
                auto_production=data.auto_production
            )

            log_activity(db, policy.user_id, "quote_sent", {
                "quote_id": quote_id, "final_value": str(data.final_value)
            })
            events.append(("quote.sent", {"quote_id": str(quote_id), "customer_id": str(quote.customer_id)}))

            await db.commit()
            logger.info(f"报价 #{quote.quote_number} 已定价发送，总额 {data.final_value}")
        except Exception as e:
            await db.rollback()
            logger.error(f"报价定价失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.get_quote_detail(db, quote_id)

    async def revise_quote(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID
    ) -> QuoteDetailResponse:
        """
        修订报价：生成新版本草稿，旧版本置为 superseded

        两次写入在同一事务内完成，不存在同一版本链两个当前版本同时可见的中间状态。
        """
        events: List[NotificationEvent] = []
        try:
            policy.require("can_price_quotes", "只有员工可以修订报价")

            old = await self.get_quote(db, quote_id)
            ensure_quote_transition(old.status, QuoteStatus.SUPERSEDED)
            items = await self.get_items(db, quote_id)

            await apply_guarded_status(db, old, old.status, QuoteStatus.SUPERSEDED)

            new_id = uuid4()
            new_quote = Quote(
                id=new_id,
                quote_number=old.quote_number,
                customer_id=old.customer_id,
                employee_id=policy.user_id,
                status=QuoteStatus.DRAFT,
                version=old.version + 1,
                root_quote_id=old.root_quote_id or old.id,
                parent_quote_id=old.id,
                final_value=old.final_value,
                auto_production=old.auto_production
            )
            db.add(new_quote)

            item_id_map = {}
            for item in items:
                new_item_id = uuid4()
                item_id_map[item.id] = new_item_id
                db.add(QuoteItem(
                    id=new_item_id,
                    quote_id=new_id,
                    sku_id=item.sku_id,
                    quantity=item.quantity,
                    price_at_time_of_quote=item.price_at_time_of_quote,
                    is_upsell=item.is_upsell,
                    supplier_id=item.supplier_id,
                    supplier_cost=item.supplier_cost,
                    delivery_days=item.delivery_days,
                    addon_ids=list(item.addon_ids or []),
                    sort_order=item.sort_order
                ))

            attachments = (await db.execute(
                select(QuoteAttachment).where(QuoteAttachment.quote_id == quote_id)
            )).scalars().all()
            for attachment in attachments:
                db.add(QuoteAttachment(
                    quote_id=new_id,
                    quote_item_id=item_id_map.get(attachment.quote_item_id),
                    file_name=attachment.file_name,
                    file_url=attachment.file_url,
                    file_size=attachment.file_size,
                    mime_type=attachment.mime_type,
                    uploaded_by=attachment.uploaded_by
                ))

            await db.flush()

            log_activity(db, policy.user_id, "quote_revised", {
                "old_quote_id": quote_id, "new_quote_id": new_id, "version": new_quote.version
            })
            events.append(("quote.revised", {
                "old_quote_id": str(quote_id), "new_quote_id": str(new_id), "version": new_quote.version
            }))

            await db.commit()
            logger.info(f"报价 #{old.quote_number} 修订为第 {new_quote.version} 版")
        except Exception as e:
            await db.rollback()
            logger.error(f"修订报价失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.get_quote_detail(db, new_id)

    async def approve_quote(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID
    ) -> QuoteDetailResponse:
        """客户批准报价，由指派组件决定进入 approved 还是 in_production"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_respond_to_quotes", "无权批准报价")

            quote = await self.get_quote(db, quote_id)
            self.ensure_owner_or_staff(policy, quote)
            ensure_quote_transition(quote.status, QuoteStatus.APPROVED)

            items = await self.get_items(db, quote_id)
            await self.assignment.resolve_approval(db, quote, items, policy.user_id, events)

            await db.commit()
            logger.info(f"报价 #{quote.quote_number} 已批准，当前状态: {quote.status}")
        except Exception as e:
            await db.rollback()
            logger.error(f"批准报价失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.get_quote_detail(db, quote_id)

    async def reject_quote(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        reason: str
    ) -> QuoteDetailResponse:
        """客户拒绝报价：sent -> rejected，必须填写原因"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_respond_to_quotes", "无权拒绝报价")

            if not reason or not reason.strip():
                raise ValidationError("拒绝原因不能为空")

            quote = await self.get_quote(db, quote_id)
            self.ensure_owner_or_staff(policy, quote)
            ensure_quote_transition(quote.status, QuoteStatus.REJECTED)

            await apply_guarded_status(
                db, quote, QuoteStatus.SENT, QuoteStatus.REJECTED,
                rejection_reason=reason.strip()
            )

            log_activity(db, policy.user_id, "quote_rejected", {"quote_id": quote_id, "reason": reason.strip()})
            events.append(("quote.rejected", {"quote_id": str(quote_id), "reason": reason.strip()}))

            await db.commit()
            logger.info(f"报价 #{quote.quote_number} 被拒绝")
        except Exception as e:
            await db.rollback()
            logger.error(f"拒绝报价失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.get_quote_detail(db, quote_id)

    async def rate_deal(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        rating: int
    ) -> QuoteDetailResponse:
        """员工为交易打分（1-10），与供应商任务评分相互独立"""
        try:
            policy.require("can_rate", "只有员工可以为交易评分")

            if not isinstance(rating, int) or isinstance(rating, bool) or rating < 1 or rating > 10:
                raise ValidationError("交易评分必须在1到10之间")

            quote = await self.get_quote(db, quote_id)
            quote.deal_rating = rating
            quote.updated_at = datetime.now()

            log_activity(db, policy.user_id, "deal_rated", {"quote_id": quote_id, "rating": rating})

            await db.commit()
            logger.info(f"报价 #{quote.quote_number} 交易评分: {rating}/10")
        except Exception as e:
            await db.rollback()
            logger.error(f"交易评分失败: {e}")
            raise

        return await self.get_quote_detail(db, quote_id)

    # ==================== 查询 ====================

    async def get_quote_detail(self, db: AsyncSession, quote_id: UUID) -> QuoteDetailResponse:
        """获取报价单完整详情（员工视图）"""
        quote = await self.get_quote(db, quote_id)
        items = await self.get_items(db, quote_id)

        response = QuoteDetailResponse.model_validate(quote)
        response.items = [QuoteItemResponse.model_validate(item) for item in items]
        return response

    async def get_quote_history(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID
    ) -> List[QuoteVersionResponse]:
        """获取版本链中的全部版本：按 root_quote_id 一次索引查询，不做链式遍历"""
        quote = await self.get_quote(db, quote_id)
        self.ensure_owner_or_staff(policy, quote)

        result = await db.execute(
            select(Quote)
            .where(Quote.root_quote_id == quote.root_quote_id)
            .order_by(Quote.version)
        )
        return [QuoteVersionResponse.model_validate(q) for q in result.scalars().all()]


# 创建全局服务实例
quote_service = QuoteService()
