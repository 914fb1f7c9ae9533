"""
报价单相关的Pydantic模式
"""
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ===== 请求 Schema =====
class QuoteItemRequest(BaseModel):
    """报价请求中的商品"""
    sku_id: UUID = Field(..., description="SKU")
    quantity: int = Field(..., ge=1, description="数量")
    is_upsell: bool = Field(default=False, description="是否追加销售")
    addon_ids: List[UUID] = Field(default_factory=list, description="附加项")


class QuoteCreateRequest(BaseModel):
    """创建报价请求（客户发起，员工可代客户发起）"""
    customer_id: Optional[UUID] = Field(None, description="客户ID（员工代发起时必填）")
    items: List[QuoteItemRequest] = Field(..., min_length=1, max_length=100, description="商品列表")


class ItemPriceRequest(BaseModel):
    """单个明细定价"""
    item_id: UUID = Field(..., description="明细ID")
    price: Decimal = Field(..., description="报价单价")
    is_upsell: Optional[bool] = Field(None, description="是否追加销售")

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("价格不能为负数")
        return v


class QuotePriceRequest(BaseModel):
    """员工定价并发送"""
    items: List[ItemPriceRequest] = Field(default_factory=list, description="明细定价")
    final_value: Decimal = Field(..., ge=0, description="报价总金额")
    auto_production: bool = Field(default=False, description="批准后自动投产")


class QuoteRejectRequest(BaseModel):
    """拒绝报价"""
    reason: str = Field(..., description="拒绝原因")


class DealRatingRequest(BaseModel):
    """交易评分"""
    rating: int = Field(..., ge=1, le=10, description="评分(1-10)")


class AttachmentCreateRequest(BaseModel):
    """上传附件"""
    quote_item_id: Optional[UUID] = Field(None, description="所属明细")
    file_name: str = Field(..., min_length=1, max_length=255, description="文件名")
    file_url: str = Field(..., min_length=1, description="文件地址")
    mime_type: Optional[str] = Field(None, max_length=100, description="MIME类型")
    file_size: Optional[int] = Field(None, ge=0, description="文件大小(字节)")


# ===== 响应 Schema（员工视图：完整字段） =====
class QuoteItemResponse(BaseModel):
    """报价明细响应"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="明细ID")
    quote_id: UUID = Field(..., description="报价单ID")
    sku_id: UUID = Field(..., description="SKU")
    quantity: int = Field(..., description="数量")
    price_at_time_of_quote: Optional[Decimal] = Field(None, description="报价单价")
    is_upsell: bool = Field(..., description="是否追加销售")
    supplier_id: Optional[UUID] = Field(None, description="供应商")
    supplier_cost: Optional[Decimal] = Field(None, description="供应商成本")
    delivery_days: Optional[int] = Field(None, description="交付天数")
    addon_ids: List[UUID] = Field(default_factory=list, description="附加项")
    sort_order: int = Field(..., description="排序顺序")


class QuoteDetailResponse(BaseModel):
    """报价单详情响应"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="报价单ID")
    quote_number: int = Field(..., description="报价单编号")
    customer_id: UUID = Field(..., description="客户")
    employee_id: Optional[UUID] = Field(None, description="报价员工")
    status: str = Field(..., description="状态")
    version: int = Field(..., description="版本号")
    root_quote_id: UUID = Field(..., description="版本链根")
    parent_quote_id: Optional[UUID] = Field(None, description="上一版本")
    final_value: Optional[Decimal] = Field(None, description="报价总金额")
    rejection_reason: Optional[str] = Field(None, description="拒绝原因")
    deal_rating: Optional[int] = Field(None, description="交易评分")
    auto_production: bool = Field(..., description="自动投产")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")
    items: List[QuoteItemResponse] = Field(default_factory=list, description="报价明细")


class QuoteVersionResponse(BaseModel):
    """版本历史项"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="报价单ID")
    quote_number: int = Field(..., description="报价单编号")
    version: int = Field(..., description="版本号")
    status: str = Field(..., description="状态")
    parent_quote_id: Optional[UUID] = Field(None, description="上一版本")
    final_value: Optional[Decimal] = Field(None, description="报价总金额")
    created_at: datetime = Field(..., description="创建时间")


class AttachmentResponse(BaseModel):
    """附件响应"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_id: UUID
    quote_item_id: Optional[UUID] = None
    file_name: str
    file_url: str
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_at: datetime

