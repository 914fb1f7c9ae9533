"""
客户相关的Pydantic模式
"""
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field, EmailStr, ConfigDict

from brokerage.schemas.quote import QuoteItemRequest, QuoteDetailResponse


class CustomerCreateRequest(BaseModel):
    """创建客户"""
    name: str = Field(..., min_length=1, max_length=255, description="姓名")
    email: EmailStr = Field(..., description="邮箱")
    phone: Optional[str] = Field(None, max_length=50, description="电话")
    address: Optional[str] = Field(None, description="地址")
    company: Optional[str] = Field(None, max_length=255, description="公司名称")


class CustomerWithQuoteRequest(CustomerCreateRequest):
    """创建客户并同时发起报价"""
    items: List[QuoteItemRequest] = Field(..., min_length=1, max_length=100, description="商品列表")


class CustomerResponse(BaseModel):
    """客户响应"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_number: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    status: str
    created_at: datetime


class CustomerWithQuoteResponse(BaseModel):
    """创建客户并发起报价的结果"""
    customer: CustomerResponse
    quote: QuoteDetailResponse
