"""
匿名经纪可见性策略

按调用方角色构造不同的查询投影，而不是查询完整记录后再过滤：
- 客户：只选取产品、尺寸、数量、报价单价、状态与时间
- 供应商：只选取任务本身的条款，不选取报价总额与客户身份
- 快递员：选取双方联系方式，不选取任何价格列
- 员工：完整记录
"""
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from brokerage.core.config import settings
from brokerage.core.middleware import AuthorizationError, NotFoundError
from brokerage.core.security import AccessPolicy, PolicyKind
from brokerage.models.catalog import Product, Sku
from brokerage.models.quote import Quote, QuoteItem
from brokerage.models.supplier import SupplierJob
from brokerage.models.user import User
from brokerage.schemas.job import SupplierJobResponse
from brokerage.schemas.quote import QuoteDetailResponse, QuoteItemResponse
from brokerage.schemas.views import (
    ContactView, CourierJobView, CustomerQuoteItemView, CustomerQuoteView,
    ShippingContactView, SupplierJobView
)
from brokerage.services.state_machine import JobStatus, QuoteStatus


CUSTOMER_QUOTE_COLUMNS = (
    Quote.id, Quote.quote_number, Quote.version, Quote.status, Quote.final_value,
    Quote.rejection_reason, Quote.created_at, Quote.updated_at,
)

CUSTOMER_ITEM_COLUMNS = (
    QuoteItem.quote_id, QuoteItem.id, Product.name.label("product_name"), Sku.size_label,
    QuoteItem.quantity, QuoteItem.price_at_time_of_quote, QuoteItem.is_upsell, QuoteItem.addon_ids,
)

SUPPLIER_JOB_COLUMNS = (
    SupplierJob.id, Quote.quote_number, Product.name.label("product_name"), Sku.size_label,
    SupplierJob.quantity, SupplierJob.price_per_unit, SupplierJob.promised_delivery_days,
    SupplierJob.status, SupplierJob.supplier_accepted_at, SupplierJob.supplier_ready_at,
    SupplierJob.supplier_rating, SupplierJob.is_cancelled, SupplierJob.cancelled_reason,
    SupplierJob.created_at,
)

# 快递员待处理队列
COURIER_QUEUE = (JobStatus.READY, JobStatus.PICKED_UP)


class VisibilityService:
    """按角色投影的读取服务"""

    # ==================== 报价单 ====================

    async def _customer_quote_views(self, db: AsyncSession, conditions) -> List[CustomerQuoteView]:
        rows = (await db.execute(
            select(*CUSTOMER_QUOTE_COLUMNS).where(*conditions).order_by(Quote.created_at.desc())
        )).mappings().all()
        if not rows:
            return []

        item_rows = (await db.execute(
            select(*CUSTOMER_ITEM_COLUMNS)
            .join(Sku, Sku.id == QuoteItem.sku_id)
            .join(Product, Product.id == Sku.product_id)
            .where(QuoteItem.quote_id.in_([row["id"] for row in rows]))
            .order_by(QuoteItem.sort_order)
        )).mappings().all()

        items_by_quote: Dict[UUID, List[CustomerQuoteItemView]] = {}
        for row in item_rows:
            data = dict(row)
            quote_id = data.pop("quote_id")
            data["addon_ids"] = data["addon_ids"] or []
            items_by_quote.setdefault(quote_id, []).append(CustomerQuoteItemView(**data))

        return [
            CustomerQuoteView(**dict(row), items=items_by_quote.get(row["id"], []))
            for row in rows
        ]

    async def _staff_quote_views(self, db: AsyncSession, conditions) -> List[QuoteDetailResponse]:
        quotes = (await db.execute(
            select(Quote)
            .where(*conditions)
            .order_by(Quote.created_at.desc())
            .execution_options(populate_existing=True)
        )).scalars().all()
        if not quotes:
            return []

        items = (await db.execute(
            select(QuoteItem)
            .where(QuoteItem.quote_id.in_([q.id for q in quotes]))
            .order_by(QuoteItem.sort_order)
            .execution_options(populate_existing=True)
        )).scalars().all()

        items_by_quote: Dict[UUID, List[QuoteItemResponse]] = {}
        for item in items:
            items_by_quote.setdefault(item.quote_id, []).append(QuoteItemResponse.model_validate(item))

        views = []
        for quote in quotes:
            view = QuoteDetailResponse.model_validate(quote)
            view.items = items_by_quote.get(quote.id, [])
            views.append(view)
        return views

    async def get_quote(self, db: AsyncSession, policy: AccessPolicy, quote_id: UUID):
        """按调用方角色读取单个报价单"""
        if policy.kind not in (PolicyKind.CUSTOMER, PolicyKind.STAFF):
            raise AuthorizationError("无权查看报价单")

        owner = (await db.execute(select(Quote.customer_id).where(Quote.id == quote_id))).scalar_one_or_none()
        if owner is None:
            raise NotFoundError("报价单", quote_id)

        if policy.is_staff:
            return (await self._staff_quote_views(db, [Quote.id == quote_id]))[0]

        if owner != policy.user_id:
            raise AuthorizationError("无权访问该报价单")
        return (await self._customer_quote_views(db, [Quote.id == quote_id]))[0]

    async def list_quotes(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        status: Optional[str] = None,
        customer_id: Optional[UUID] = None
    ) -> list:
        """
        报价单列表

        客户只能看到自己的报价单；未指定状态时不返回已被替代的旧版本。
        """
        if policy.kind not in (PolicyKind.CUSTOMER, PolicyKind.STAFF):
            raise AuthorizationError("无权查看报价单")

        conditions = []
        if status:
            conditions.append(Quote.status == status)
        else:
            conditions.append(Quote.status != QuoteStatus.SUPERSEDED)

        if policy.is_staff:
            if customer_id:
                conditions.append(Quote.customer_id == customer_id)
            return await self._staff_quote_views(db, conditions)

        if customer_id and customer_id != policy.user_id:
            raise AuthorizationError("客户只能查看自己的报价单")
        conditions.append(Quote.customer_id == policy.user_id)
        return await self._customer_quote_views(db, conditions)

    # ==================== 供应商任务 ====================

    async def _supplier_job_views(self, db: AsyncSession, conditions) -> List[SupplierJobView]:
        rows = (await db.execute(
            select(*SUPPLIER_JOB_COLUMNS, SupplierJob.customer_id)
            .join(Quote, Quote.id == SupplierJob.quote_id)
            .join(Sku, Sku.id == SupplierJob.sku_id)
            .join(Product, Product.id == Sku.product_id)
            .where(*conditions)
            .order_by(SupplierJob.created_at.desc())
        )).mappings().all()

        contacts: Dict[UUID, ShippingContactView] = {}
        if rows and settings.SUPPLIER_SEES_CUSTOMER_CONTACT:
            contact_rows = (await db.execute(
                select(User.id, User.name, User.address, User.phone)
                .where(User.id.in_({row["customer_id"] for row in rows}))
            )).mappings().all()
            contacts = {
                row["id"]: ShippingContactView(name=row["name"], address=row["address"], phone=row["phone"])
                for row in contact_rows
            }

        views = []
        for row in rows:
            data = dict(row)
            customer_id = data.pop("customer_id")
            views.append(SupplierJobView(**data, shipping_contact=contacts.get(customer_id)))
        return views

    async def _courier_job_views(self, db: AsyncSession, conditions) -> List[CourierJobView]:
        supplier_user = aliased(User)
        customer_user = aliased(User)

        rows = (await db.execute(
            select(
                SupplierJob.id, Quote.quote_number, Product.name.label("product_name"), Sku.size_label,
                SupplierJob.quantity, SupplierJob.status, SupplierJob.supplier_ready_at,
                SupplierJob.picked_up_at, SupplierJob.picked_up_by,
                SupplierJob.delivered_at, SupplierJob.delivered_by,
                supplier_user.name.label("supplier_name"),
                supplier_user.company.label("supplier_company"),
                supplier_user.address.label("supplier_address"),
                supplier_user.phone.label("supplier_phone"),
                customer_user.name.label("customer_name"),
                customer_user.company.label("customer_company"),
                customer_user.address.label("customer_address"),
                customer_user.phone.label("customer_phone"),
            )
            .join(Quote, Quote.id == SupplierJob.quote_id)
            .join(Sku, Sku.id == SupplierJob.sku_id)
            .join(Product, Product.id == Sku.product_id)
            .join(supplier_user, supplier_user.id == SupplierJob.supplier_id)
            .join(customer_user, customer_user.id == SupplierJob.customer_id)
            .where(*conditions)
            .order_by(SupplierJob.supplier_ready_at)
        )).mappings().all()

        views = []
        for row in rows:
            data = dict(row)
            parties = {}
            for party in ("supplier", "customer"):
                parties[party] = ContactView(
                    name=data.pop(f"{party}_name"),
                    company=data.pop(f"{party}_company"),
                    address=data.pop(f"{party}_address"),
                    phone=data.pop(f"{party}_phone"),
                )
            views.append(CourierJobView(**data, **parties))
        return views

    async def _staff_job_views(self, db: AsyncSession, conditions) -> List[SupplierJobResponse]:
        jobs = (await db.execute(
            select(SupplierJob)
            .where(*conditions)
            .order_by(SupplierJob.created_at.desc())
            .execution_options(populate_existing=True)
        )).scalars().all()
        return [SupplierJobResponse.model_validate(job) for job in jobs]

    async def get_job(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID):
        """按调用方角色读取单个任务"""
        owner = (await db.execute(
            select(SupplierJob.supplier_id).where(SupplierJob.id == job_id)
        )).scalar_one_or_none()
        if owner is None:
            raise NotFoundError("供应商任务", job_id)

        conditions = [SupplierJob.id == job_id]
        if policy.is_staff:
            return (await self._staff_job_views(db, conditions))[0]
        if policy.kind == PolicyKind.SUPPLIER:
            if owner != policy.user_id:
                raise AuthorizationError("只能查看分配给自己的任务")
            return (await self._supplier_job_views(db, conditions))[0]
        if policy.kind == PolicyKind.COURIER:
            return (await self._courier_job_views(db, conditions))[0]
        raise AuthorizationError("无权查看供应商任务")

    async def list_jobs(self, db: AsyncSession, policy: AccessPolicy, status: Optional[str] = None) -> list:
        """
        任务列表

        供应商：自己的未取消任务；快递员：待取件/运输中的任务；员工：全部任务。
        """
        if policy.is_staff:
            conditions = []
            if status == JobStatus.CANCELLED:
                conditions.append(SupplierJob.is_cancelled.is_(True))
            elif status:
                conditions.append(SupplierJob.status == status)
            return await self._staff_job_views(db, conditions)

        conditions = [SupplierJob.is_cancelled.is_(False)]
        if policy.kind == PolicyKind.SUPPLIER:
            conditions.append(SupplierJob.supplier_id == policy.user_id)
            if status:
                conditions.append(SupplierJob.status == status)
            return await self._supplier_job_views(db, conditions)

        if policy.kind == PolicyKind.COURIER:
            if status:
                conditions.append(SupplierJob.status == status)
            else:
                conditions.append(SupplierJob.status.in_(COURIER_QUEUE))
            return await self._courier_job_views(db, conditions)

        raise AuthorizationError("无权查看供应商任务")


# 创建全局服务实例
visibility_service = VisibilityService()
