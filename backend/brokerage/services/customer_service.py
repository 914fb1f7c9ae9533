"""
客户管理服务
"""
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.middleware import ValidationError
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.user import User
from brokerage.schemas.customer import CustomerCreateRequest, CustomerResponse, CustomerWithQuoteRequest
from brokerage.schemas.quote import QuoteDetailResponse
from brokerage.services import sequence_allocator
from brokerage.services.activity_service import log_activity
from brokerage.services.notification_service import (
    NotificationEvent, Notifier, default_notifier, dispatch_notifications
)
from brokerage.services.quote_service import QuoteService, quote_service


class CustomerService:
    """客户管理服务"""

    def __init__(self, notifier: Notifier = None, quotes: QuoteService = None):
        self.notifier = notifier or default_notifier
        self.quotes = quotes or quote_service

    async def _find_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalars().first()

    async def _insert_customer(
        self,
        db: AsyncSession,
        data: CustomerCreateRequest,
        actor_id
    ) -> User:
        """在调用方事务内分配客户编号并写入客户"""
        customer_number = await sequence_allocator.allocate(db, sequence_allocator.CUSTOMER_COUNTER)

        customer = User(
            role=Role.CUSTOMER,
            name=data.name.strip(),
            email=data.email.lower(),
            phone=data.phone,
            address=data.address,
            company=data.company,
            customer_number=customer_number
        )
        db.add(customer)
        try:
            await db.flush()
        except IntegrityError as e:
            raise ValidationError("邮箱已被使用", {"email": data.email}) from e

        log_activity(db, actor_id, "customer_created", {
            "customer_id": customer.id, "customer_number": customer_number
        })
        return customer

    async def create_customer(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        data: CustomerCreateRequest
    ) -> CustomerResponse:
        """员工创建客户，客户编号与插入位于同一事务"""
        try:
            policy.require("can_manage_customers", "只有员工可以创建客户")

            customer = await self._insert_customer(db, data, policy.user_id)

            await db.commit()
            logger.info(f"创建客户成功: {customer.name} (#{customer.customer_number})")
        except Exception as e:
            await db.rollback()
            logger.error(f"创建客户失败: {e}")
            raise

        return CustomerResponse.model_validate(customer)

    async def create_customer_with_quote(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        data: CustomerWithQuoteRequest
    ) -> Tuple[CustomerResponse, QuoteDetailResponse]:
        """
        创建客户（按邮箱复用已有客户）并发起草稿报价，单一事务

        Returns:
            (客户, 报价单详情)
        """
        events: List[NotificationEvent] = []
        try:
            policy.require("can_manage_customers", "只有员工可以代客户发起报价")

            customer = await self._find_by_email(db, data.email)
            if customer is not None and customer.role != Role.CUSTOMER:
                raise ValidationError("该邮箱属于非客户账户", {"email": data.email})
            if customer is None:
                customer = await self._insert_customer(db, data, policy.user_id)

            quote = await self.quotes.insert_quote_request(db, customer.id, data.items, policy.user_id, events)

            await db.commit()
            logger.info(f"为客户 {customer.name} 创建报价 #{quote.quote_number}")
        except Exception as e:
            await db.rollback()
            logger.error(f"创建客户及报价失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return (
            CustomerResponse.model_validate(customer),
            await self.quotes.get_quote_detail(db, quote.id)
        )

    async def list_customers(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        keyword: Optional[str] = None
    ) -> List[CustomerResponse]:
        """客户列表（员工）"""
        policy.require("can_manage_customers", "只有员工可以查看客户列表")

        query = select(User).where(User.role == Role.CUSTOMER)
        if keyword:
            pattern = f"%{keyword}%"
            query = query.where(
                User.name.ilike(pattern) | User.email.ilike(pattern) | User.company.ilike(pattern)
            )

        result = await db.execute(query.order_by(User.customer_number))
        return [CustomerResponse.model_validate(c) for c in result.scalars().all()]


# 创建全局服务实例
customer_service = CustomerService()
