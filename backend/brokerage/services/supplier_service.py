"""
供应商长期报价与历史统计服务
"""
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.middleware import (
    AuthorizationError, ConcurrencyConflict, NotFoundError, ValidationError
)
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.catalog import Sku
from brokerage.models.supplier import SupplierPrice
from brokerage.models.user import User
from brokerage.schemas.supplier import (
    SupplierPriceRequest, SupplierPriceResponse, SupplierStatsResponse
)
from brokerage.services.activity_service import log_activity
from brokerage.services.scoring_service import (
    ScoringService, rating_score, reliability_score, scoring_service
)


class SupplierService:
    """供应商服务"""

    def __init__(self, scoring: ScoringService = None):
        self.scoring = scoring or scoring_service

    async def _ensure_supplier(self, db: AsyncSession, supplier_id: UUID) -> User:
        result = await db.execute(
            select(User).where(User.id == supplier_id, User.role == Role.SUPPLIER)
        )
        supplier = result.scalars().first()
        if not supplier:
            raise NotFoundError("供应商", supplier_id)
        return supplier

    def _resolve_supplier_id(self, policy: AccessPolicy, requested: Optional[UUID]) -> UUID:
        """供应商只能维护自己的报价，员工代维护时必须指定供应商"""
        if policy.actor.role == Role.SUPPLIER:
            if requested and requested != policy.user_id:
                raise AuthorizationError("供应商只能维护自己的报价")
            return policy.user_id
        if not requested:
            raise ValidationError("代供应商维护报价时必须指定供应商")
        return requested

    async def upsert_supplier_price(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        data: SupplierPriceRequest
    ) -> SupplierPriceResponse:
        """新增或更新供应商长期报价"""
        try:
            policy.require("can_manage_own_prices", "无权维护供应商报价")

            if data.price_per_unit <= 0:
                raise ValidationError("单价必须为正数")
            if data.delivery_days < 1:
                raise ValidationError("交付天数至少为1天")

            supplier_id = self._resolve_supplier_id(policy, data.supplier_id)
            await self._ensure_supplier(db, supplier_id)
            if not (await db.execute(select(Sku.id).where(Sku.id == data.sku_id))).first():
                raise NotFoundError("SKU", data.sku_id)

            result = await db.execute(
                select(SupplierPrice).where(
                    SupplierPrice.supplier_id == supplier_id,
                    SupplierPrice.sku_id == data.sku_id
                )
            )
            price = result.scalars().first()
            if price:
                price.price_per_unit = data.price_per_unit
                price.delivery_days = data.delivery_days
                price.updated_at = datetime.now()
            else:
                price = SupplierPrice(
                    supplier_id=supplier_id,
                    sku_id=data.sku_id,
                    price_per_unit=data.price_per_unit,
                    delivery_days=data.delivery_days
                )
                db.add(price)

            try:
                await db.flush()
            except IntegrityError as e:
                raise ConcurrencyConflict("该SKU报价正在被并发修改，请重试") from e

            log_activity(db, policy.user_id, "supplier_price_updated", {
                "supplier_id": supplier_id,
                "sku_id": data.sku_id,
                "price_per_unit": str(data.price_per_unit),
                "delivery_days": data.delivery_days
            })

            await db.commit()
            logger.info(f"供应商 {supplier_id} 更新SKU {data.sku_id} 报价: {data.price_per_unit}")
        except Exception as e:
            await db.rollback()
            logger.error(f"更新供应商报价失败: {e}")
            raise

        return SupplierPriceResponse.model_validate(price)

    async def list_supplier_prices(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        supplier_id: Optional[UUID] = None
    ) -> List[SupplierPriceResponse]:
        """查询长期报价：供应商只能查看自己的报价"""
        policy.require("can_manage_own_prices", "无权查看供应商报价")
        supplier_id = self._resolve_supplier_id(policy, supplier_id)

        result = await db.execute(
            select(SupplierPrice)
            .where(SupplierPrice.supplier_id == supplier_id)
            .order_by(SupplierPrice.updated_at.desc())
        )
        return [SupplierPriceResponse.model_validate(p) for p in result.scalars().all()]

    async def get_supplier_stats(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        supplier_id: UUID
    ) -> SupplierStatsResponse:
        """供应商历史统计（评分引擎使用的同一组聚合）"""
        policy.require("can_view_recommendations", "只有员工可以查看供应商统计")
        await self._ensure_supplier(db, supplier_id)

        history = (await self.scoring.load_histories(db, [supplier_id]))[supplier_id]
        return SupplierStatsResponse(
            supplier_id=supplier_id,
            avg_rating=round(history.avg_rating, 2) if history.avg_rating is not None else None,
            rated_jobs=history.rated_jobs,
            on_time_jobs=history.on_time_jobs,
            completed_jobs=history.completed_jobs,
            cancelled_jobs=history.cancelled_jobs,
            open_jobs=history.open_jobs,
            rating_score=round(rating_score(history), 2),
            reliability_score=round(reliability_score(history), 2)
        )


# 创建全局服务实例
supplier_service = SupplierService()
