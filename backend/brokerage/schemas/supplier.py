"""
供应商评分、指派、长期报价相关的Pydantic模式
"""
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


# ===== 权重配置 =====
class SupplierWeights(BaseModel):
    """评分权重（0-100，总和必须为100）"""
    price: int = Field(..., ge=0, le=100, description="价格权重")
    rating: int = Field(..., ge=0, le=100, description="评分权重")
    delivery_time: int = Field(..., ge=0, le=100, description="交付时间权重")
    reliability: int = Field(..., ge=0, le=100, description="可靠性权重")

    @property
    def total(self) -> int:
        return self.price + self.rating + self.delivery_time + self.reliability


class SupplierWeightsResponse(SupplierWeights):
    """当前生效的权重配置"""
    version: int = Field(..., description="配置版本")
    updated_by: Optional[UUID] = Field(None, description="修改人")


# ===== 推荐 =====
class SupplierScore(BaseModel):
    """单个候选供应商得分"""
    supplier_id: UUID = Field(..., description="供应商")
    supplier_name: str = Field(..., description="供应商名称")
    price_per_unit: Decimal = Field(..., description="单价（品类推荐为各SKU单价之和）")
    total_price: Decimal = Field(..., description="总价")
    delivery_days: float = Field(..., description="交付天数（品类推荐为平均值）")
    avg_rating: Optional[float] = Field(None, description="历史平均评分")
    reliability_pct: Optional[float] = Field(None, description="准时率")
    price_score: float = Field(..., description="价格得分")
    rating_score: float = Field(..., description="评分得分")
    delivery_score: float = Field(..., description="交付得分")
    reliability_score: float = Field(..., description="可靠性得分")
    total_score: float = Field(..., description="综合得分")
    rank: int = Field(..., description="排名")


class RecommendationItem(BaseModel):
    """按品类推荐的输入明细"""
    quote_item_id: Optional[UUID] = Field(None, description="报价明细")
    sku_id: UUID = Field(..., description="SKU")
    quantity: int = Field(..., ge=1, description="数量")


class CategoryRecommendationRequest(BaseModel):
    """按品类推荐请求"""
    items: List[RecommendationItem] = Field(..., min_length=1, description="明细列表")


class CategoryRecommendation(BaseModel):
    """单个品类的推荐结果"""
    category: str = Field(..., description="品类")
    items: List[RecommendationItem] = Field(..., description="品类内明细")
    suppliers: List[SupplierScore] = Field(default_factory=list, description="排名列表")


# ===== 指派 =====
class AssignSupplierToItemRequest(BaseModel):
    """为单个明细指派供应商"""
    supplier_id: UUID = Field(..., description="供应商")
    supplier_cost: Optional[Decimal] = Field(None, gt=0, description="成本（缺省取长期报价）")
    delivery_days: Optional[int] = Field(None, ge=1, description="交付天数（缺省取长期报价）")


class CategoryAssignmentEntry(BaseModel):
    """品类指派中的单个明细"""
    quote_item_id: UUID = Field(..., description="报价明细")
    price: Decimal = Field(..., gt=0, description="供应商单价")
    delivery_days: int = Field(..., ge=1, description="交付天数")


class AssignSupplierToCategoryRequest(BaseModel):
    """按品类批量指派"""
    supplier_id: UUID = Field(..., description="供应商")
    items: List[CategoryAssignmentEntry] = Field(..., min_length=1, description="明细列表")


# ===== 长期报价 =====
class SupplierPriceRequest(BaseModel):
    """供应商维护长期报价"""
    supplier_id: Optional[UUID] = Field(None, description="供应商（员工代维护时必填）")
    sku_id: UUID = Field(..., description="SKU")
    price_per_unit: Decimal = Field(..., description="单价")
    delivery_days: int = Field(..., description="交付天数")


class SupplierPriceResponse(BaseModel):
    """长期报价响应"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    supplier_id: UUID
    sku_id: UUID
    price_per_unit: Decimal
    delivery_days: int
    updated_at: datetime


class SupplierStatsResponse(BaseModel):
    """供应商历史统计"""
    supplier_id: UUID = Field(..., description="供应商")
    avg_rating: Optional[float] = Field(None, description="平均评分")
    rated_jobs: int = Field(..., description="已评分任务数")
    on_time_jobs: int = Field(..., description="准时任务数")
    completed_jobs: int = Field(..., description="已完成备货任务数")
    cancelled_jobs: int = Field(..., description="取消任务数")
    open_jobs: int = Field(..., description="进行中任务数")
    rating_score: float = Field(..., description="评分得分")
    reliability_score: float = Field(..., description="可靠性得分")
