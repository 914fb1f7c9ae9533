"""
按角色区分的读取投影（匿名经纪）

每种视图只声明该角色允许看到的字段，对应的查询也只选取这些列：
- 客户：产品、尺寸、数量、价格、状态、时间，不含任何供应商信息或成本
- 供应商：产品、尺寸、数量、自己的价格与交付条款、状态，不含报价总额和客户身份
  （收货联系方式为显式配置的例外，见 ShippingContactView）
- 快递员：双方姓名/地址/电话，不含任何价格字段
"""
from typing import Optional, List, Union
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field

from brokerage.schemas.job import SupplierJobResponse
from brokerage.schemas.quote import QuoteDetailResponse


class ContactView(BaseModel):
    """物流联系方式"""
    name: str = Field(..., description="姓名")
    company: Optional[str] = Field(None, description="公司名称")
    address: Optional[str] = Field(None, description="地址")
    phone: Optional[str] = Field(None, description="电话")


class ShippingContactView(BaseModel):
    """供应商可见的客户收货联系方式（仅在 SUPPLIER_SEES_CUSTOMER_CONTACT 开启时提供）"""
    name: str = Field(..., description="收货人")
    address: Optional[str] = Field(None, description="收货地址")
    phone: Optional[str] = Field(None, description="联系电话")


# ===== 客户视图 =====
class CustomerQuoteItemView(BaseModel):
    id: UUID
    product_name: str
    size_label: str
    quantity: int
    price_at_time_of_quote: Optional[Decimal] = None
    is_upsell: bool
    addon_ids: List[UUID] = Field(default_factory=list)


class CustomerQuoteView(BaseModel):
    id: UUID
    quote_number: int
    version: int
    status: str
    final_value: Optional[Decimal] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[CustomerQuoteItemView] = Field(default_factory=list)


# ===== 供应商视图 =====
class SupplierJobView(BaseModel):
    id: UUID
    quote_number: int
    product_name: str
    size_label: str
    quantity: int
    price_per_unit: Decimal
    promised_delivery_days: Optional[int] = None
    status: str
    supplier_accepted_at: Optional[datetime] = None
    supplier_ready_at: Optional[datetime] = None
    supplier_rating: Optional[int] = None
    is_cancelled: bool
    cancelled_reason: Optional[str] = None
    created_at: datetime
    shipping_contact: Optional[ShippingContactView] = None


# ===== 快递员视图 =====
class CourierJobView(BaseModel):
    id: UUID
    quote_number: int
    product_name: str
    size_label: str
    quantity: int
    status: str
    supplier_ready_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    picked_up_by: Optional[UUID] = None
    delivered_at: Optional[datetime] = None
    delivered_by: Optional[UUID] = None
    supplier: ContactView
    customer: ContactView


# 按角色返回的投影（员工完整视图在前）
QuoteView = Union[QuoteDetailResponse, CustomerQuoteView]
JobView = Union[SupplierJobResponse, SupplierJobView, CourierJobView]
