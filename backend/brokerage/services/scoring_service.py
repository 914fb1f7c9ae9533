"""
供应商评分与推荐服务

四项子得分（0-100）按当前权重加权求和：
- 价格：最低价得100，其余按 100 * 最低价 / 单价
- 评分：历史平均评分 / 5 * 100，无评分记录取中性默认值
- 交付：最短交付天数得100，其余按 100 * 最短天数 / 天数
- 可靠性：准时任务 / 已完成未取消任务 * 100，无历史取中性默认值

排序：综合得分降序，价格升序，供应商ID升序。
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.config import settings
from brokerage.core.middleware import ConcurrencyConflict, NotFoundError, ValidationError
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.catalog import Product, Sku
from brokerage.models.supplier import SupplierJob, SupplierPrice, SupplierWeightConfig
from brokerage.models.user import User
from brokerage.schemas.supplier import (
    CategoryRecommendation, RecommendationItem, SupplierScore,
    SupplierWeights, SupplierWeightsResponse
)
from brokerage.services.activity_service import log_activity


SECONDS_PER_DAY = 86400


@dataclass
class SupplierHistory:
    """供应商历史任务聚合"""
    rating_sum: int = 0
    rated_jobs: int = 0
    on_time_jobs: int = 0
    completed_jobs: int = 0
    cancelled_jobs: int = 0
    open_jobs: int = 0

    @property
    def avg_rating(self) -> Optional[float]:
        if not self.rated_jobs:
            return None
        return self.rating_sum / self.rated_jobs

    @property
    def reliability_pct(self) -> Optional[float]:
        if not self.completed_jobs:
            return None
        return self.on_time_jobs / self.completed_jobs * 100


@dataclass
class _Candidate:
    supplier_id: UUID
    supplier_name: str
    # sku_id -> (单价, 交付天数)
    terms: Dict[UUID, tuple]


# ==================== 纯函数：子得分 ====================

def price_score(price: Decimal, min_price: Decimal) -> float:
    if price <= 0:
        return 100.0
    return float(100 * max(min_price, Decimal(0)) / price)


def delivery_score(days: float, min_days: float) -> float:
    if days <= 0:
        return 100.0
    return 100.0 * max(min_days, 0) / days


def rating_score(history: SupplierHistory, neutral: float = None) -> float:
    neutral = settings.NEUTRAL_SUPPLIER_SCORE if neutral is None else neutral
    avg = history.avg_rating
    return neutral if avg is None else avg / 5 * 100


def reliability_score(history: SupplierHistory, neutral: float = None) -> float:
    neutral = settings.NEUTRAL_SUPPLIER_SCORE if neutral is None else neutral
    pct = history.reliability_pct
    return neutral if pct is None else pct


def composite_score(scores: Dict[str, float], weights: SupplierWeights) -> float:
    """综合得分 = Σ(子得分 × 权重) / 100"""
    return (
        scores["price"] * weights.price
        + scores["rating"] * weights.rating
        + scores["delivery"] * weights.delivery_time
        + scores["reliability"] * weights.reliability
    ) / 100


def is_on_time(job: SupplierJob) -> bool:
    """备货耗时不超过承诺天数即为准时；未承诺天数视为准时"""
    if job.promised_delivery_days is None:
        return True
    elapsed_days = (job.supplier_ready_at - job.created_at).total_seconds() / SECONDS_PER_DAY
    return elapsed_days <= job.promised_delivery_days


def summarize_history(jobs: Iterable[SupplierJob]) -> SupplierHistory:
    """将一个供应商的任务汇总为历史统计"""
    history = SupplierHistory()
    for job in jobs:
        if job.is_cancelled:
            history.cancelled_jobs += 1
            continue
        if job.supplier_rating is not None:
            history.rating_sum += job.supplier_rating
            history.rated_jobs += 1
        if job.supplier_ready_at is not None:
            history.completed_jobs += 1
            if is_on_time(job):
                history.on_time_jobs += 1
        else:
            history.open_jobs += 1
    return history


def rank_scores(scores: List[SupplierScore]) -> List[SupplierScore]:
    """按综合得分降序、价格升序、供应商ID升序排序并写入名次"""
    ordered = sorted(scores, key=lambda s: (-s.total_score, s.total_price, s.supplier_id))
    for idx, score in enumerate(ordered, 1):
        score.rank = idx
    return ordered


class ScoringService:
    """供应商评分服务"""

    # ==================== 权重配置 ====================

    @staticmethod
    def default_weights() -> SupplierWeightsResponse:
        return SupplierWeightsResponse(
            version=0,
            price=settings.DEFAULT_WEIGHT_PRICE,
            rating=settings.DEFAULT_WEIGHT_RATING,
            delivery_time=settings.DEFAULT_WEIGHT_DELIVERY,
            reliability=settings.DEFAULT_WEIGHT_RELIABILITY,
        )

    async def get_weights(self, db: AsyncSession) -> SupplierWeightsResponse:
        """读取最新版本的权重配置，尚无记录时使用默认值"""
        result = await db.execute(
            select(SupplierWeightConfig).order_by(SupplierWeightConfig.version.desc()).limit(1)
        )
        config = result.scalars().first()
        if not config:
            return self.default_weights()

        return SupplierWeightsResponse(
            version=config.version,
            price=config.price,
            rating=config.rating,
            delivery_time=config.delivery_time,
            reliability=config.reliability,
            updated_by=config.updated_by
        )

    async def update_weights(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        weights: SupplierWeights
    ) -> SupplierWeightsResponse:
        """
        更新评分权重（仅管理员）

        以追加新版本的方式写入，并发更新时版本号冲突返回 ConcurrencyConflict。
        """
        try:
            policy.require("can_configure_weights", "只有管理员可以修改评分权重")

            if weights.total != 100:
                raise ValidationError(
                    f"权重之和必须为100，当前为{weights.total}",
                    {"total": weights.total}
                )

            current = await self.get_weights(db)
            config = SupplierWeightConfig(
                version=current.version + 1,
                price=weights.price,
                rating=weights.rating,
                delivery_time=weights.delivery_time,
                reliability=weights.reliability,
                updated_by=policy.user_id
            )
            db.add(config)
            try:
                await db.flush()
            except IntegrityError as e:
                raise ConcurrencyConflict("权重配置已被其他管理员更新，请刷新后重试") from e

            log_activity(db, policy.user_id, "supplier_weights_updated", {
                "version": config.version,
                "price": weights.price,
                "rating": weights.rating,
                "delivery_time": weights.delivery_time,
                "reliability": weights.reliability
            })

            await db.commit()
            logger.info(f"评分权重更新为第 {config.version} 版: {weights.model_dump()}")
        except Exception as e:
            await db.rollback()
            logger.error(f"更新评分权重失败: {e}")
            raise

        return await self.get_weights(db)

    # ==================== 历史统计 ====================

    async def load_histories(
        self,
        db: AsyncSession,
        supplier_ids: Sequence[UUID]
    ) -> Dict[UUID, SupplierHistory]:
        """一次查询加载多个供应商的历史任务统计"""
        if not supplier_ids:
            return {}

        result = await db.execute(
            select(SupplierJob).where(SupplierJob.supplier_id.in_(set(supplier_ids)))
        )
        jobs_by_supplier = defaultdict(list)
        for job in result.scalars().all():
            jobs_by_supplier[job.supplier_id].append(job)

        return {sid: summarize_history(jobs_by_supplier.get(sid, [])) for sid in supplier_ids}

    async def _load_candidates(self, db: AsyncSession, sku_ids: Iterable[UUID]) -> List[_Candidate]:
        """持有任一SKU长期报价的在职供应商"""
        result = await db.execute(
            select(SupplierPrice, User.name)
            .join(User, User.id == SupplierPrice.supplier_id)
            .where(
                SupplierPrice.sku_id.in_(set(sku_ids)),
                User.role == Role.SUPPLIER,
                User.status == "active"
            )
        )

        candidates: Dict[UUID, _Candidate] = {}
        for price, name in result.all():
            candidate = candidates.setdefault(
                price.supplier_id, _Candidate(price.supplier_id, name, {})
            )
            candidate.terms[price.sku_id] = (price.price_per_unit, price.delivery_days)
        return list(candidates.values())

    def _score_bundle(
        self,
        candidates: List[_Candidate],
        quantities: Dict[UUID, int],
        histories: Dict[UUID, SupplierHistory],
        weights: SupplierWeights
    ) -> List[SupplierScore]:
        """对覆盖全部SKU的候选供应商打分，价格与交付子得分按SKU求平均"""
        sku_ids = list(quantities.keys())
        min_price = {sku: min(c.terms[sku][0] for c in candidates) for sku in sku_ids}
        min_days = {sku: min(c.terms[sku][1] for c in candidates) for sku in sku_ids}

        scores = []
        for candidate in candidates:
            history = histories.get(candidate.supplier_id, SupplierHistory())
            sub = {
                "price": sum(price_score(candidate.terms[s][0], min_price[s]) for s in sku_ids) / len(sku_ids),
                "delivery": sum(delivery_score(candidate.terms[s][1], min_days[s]) for s in sku_ids) / len(sku_ids),
                "rating": rating_score(history),
                "reliability": reliability_score(history),
            }

            scores.append(SupplierScore(
                supplier_id=candidate.supplier_id,
                supplier_name=candidate.supplier_name,
                price_per_unit=sum((candidate.terms[s][0] for s in sku_ids), Decimal(0)),
                total_price=sum((candidate.terms[s][0] * quantities[s] for s in sku_ids), Decimal(0)),
                delivery_days=round(sum(candidate.terms[s][1] for s in sku_ids) / len(sku_ids), 2),
                avg_rating=round(history.avg_rating, 2) if history.avg_rating is not None else None,
                reliability_pct=round(history.reliability_pct, 2) if history.reliability_pct is not None else None,
                price_score=round(sub["price"], 2),
                rating_score=round(sub["rating"], 2),
                delivery_score=round(sub["delivery"], 2),
                reliability_score=round(sub["reliability"], 2),
                total_score=round(composite_score(sub, weights), 2),
                rank=0
            ))

        return rank_scores(scores)

    # ==================== 推荐 ====================

    async def recommend_suppliers(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        sku_id: UUID,
        quantity: int
    ) -> List[SupplierScore]:
        """
        单个SKU的供应商推荐

        Args:
            sku_id: SKU
            quantity: 数量（用于计算总价）

        Returns:
            List[SupplierScore]: 排名列表，无候选时为空
        """
        policy.require("can_view_recommendations", "只有员工可以查看供应商推荐")

        if quantity < 1:
            raise ValidationError("数量至少为1")
        if not (await db.execute(select(Sku.id).where(Sku.id == sku_id))).first():
            raise NotFoundError("SKU", sku_id)

        candidates = await self._load_candidates(db, [sku_id])
        if not candidates:
            logger.info(f"SKU {sku_id} 暂无供应商报价")
            return []

        weights = await self.get_weights(db)
        histories = await self.load_histories(db, [c.supplier_id for c in candidates])
        ranked = self._score_bundle(candidates, {sku_id: quantity}, histories, weights)

        logger.info(f"SKU {sku_id} 推荐完成，候选供应商 {len(ranked)} 个，权重版本 {weights.version}")
        return ranked

    async def recommend_by_category(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        items: List[RecommendationItem]
    ) -> List[CategoryRecommendation]:
        """
        按品类推荐供应商

        明细按产品类别分组；只有为组内全部SKU都提供报价的供应商才是候选。
        """
        policy.require("can_view_recommendations", "只有员工可以查看供应商推荐")

        if not items:
            raise ValidationError("推荐明细不能为空")

        sku_ids = {item.sku_id for item in items}
        result = await db.execute(
            select(Sku.id, Product.category)
            .join(Product, Product.id == Sku.product_id)
            .where(Sku.id.in_(sku_ids))
        )
        category_of = dict(result.all())
        missing = sku_ids - set(category_of)
        if missing:
            raise NotFoundError("SKU", sorted(str(s) for s in missing)[0])

        grouped: Dict[str, List[RecommendationItem]] = defaultdict(list)
        for item in items:
            grouped[category_of[item.sku_id]].append(item)

        weights = await self.get_weights(db)
        all_candidates = await self._load_candidates(db, sku_ids)
        histories = await self.load_histories(db, [c.supplier_id for c in all_candidates])

        recommendations = []
        for category in sorted(grouped):
            group = grouped[category]
            quantities: Dict[UUID, int] = defaultdict(int)
            for item in group:
                quantities[item.sku_id] += item.quantity

            covering = [
                c for c in all_candidates
                if all(sku in c.terms for sku in quantities)
            ]
            suppliers = self._score_bundle(covering, dict(quantities), histories, weights) if covering else []
            recommendations.append(CategoryRecommendation(category=category, items=group, suppliers=suppliers))

        logger.info(f"品类推荐完成: {len(recommendations)} 个品类，权重版本 {weights.version}")
        return recommendations


# 创建全局服务实例
scoring_service = ScoringService()
