"""
供应商任务相关的Pydantic模式
"""
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class JobCancelRequest(BaseModel):
    """取消任务"""
    reason: str = Field(..., min_length=1, max_length=500, description="取消原因")


class JobRateRequest(BaseModel):
    """供应商评分"""
    rating: int = Field(..., ge=1, le=5, description="评分(1-5)")


class SupplierJobResponse(BaseModel):
    """任务完整视图（员工）"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_id: UUID
    quote_item_id: UUID
    supplier_id: UUID
    customer_id: UUID
    sku_id: UUID
    quantity: int
    price_per_unit: Decimal
    promised_delivery_days: Optional[int] = None
    status: str
    supplier_accepted_at: Optional[datetime] = None
    supplier_ready_at: Optional[datetime] = None
    supplier_rating: Optional[int] = None
    picked_up_at: Optional[datetime] = None
    picked_up_by: Optional[UUID] = None
    delivered_at: Optional[datetime] = None
    delivered_by: Optional[UUID] = None
    is_cancelled: bool
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    created_at: datetime


class AssignmentResult(BaseModel):
    """指派结果"""
    quote_id: UUID = Field(..., description="报价单")
    quote_status: str = Field(..., description="报价单状态")
    updated_item_ids: List[UUID] = Field(default_factory=list, description="已更新明细")
    created_jobs: List[SupplierJobResponse] = Field(default_factory=list, description="新建任务")
