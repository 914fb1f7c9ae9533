"""
报价单API端点
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.database import get_db
from brokerage.core.security import AccessPolicy, get_access_policy
from brokerage.schemas.job import AssignmentResult
from brokerage.schemas.quote import (
    AttachmentCreateRequest, AttachmentResponse, DealRatingRequest,
    QuoteCreateRequest, QuotePriceRequest, QuoteRejectRequest, QuoteVersionResponse
)
from brokerage.schemas.supplier import AssignSupplierToCategoryRequest, AssignSupplierToItemRequest
from brokerage.schemas.views import QuoteView
from brokerage.services.assignment_service import assignment_service
from brokerage.services.attachment_service import attachment_service
from brokerage.services.quote_service import quote_service
from brokerage.services.visibility_service import visibility_service

router = APIRouter()


@router.post("/", response_model=QuoteView, status_code=201)
async def create_quote_request(
    request: QuoteCreateRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """
    发起报价请求

    生成草稿报价单，报价编号在同一事务内分配
    """
    quote = await quote_service.create_quote_request(db, policy, request)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.get("/", response_model=List[QuoteView])
async def list_quotes(
    status: Optional[str] = Query(None, description="状态筛选"),
    customer_id: Optional[UUID] = Query(None, description="客户筛选"),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取报价单列表（按角色投影）"""
    return await visibility_service.list_quotes(db, policy, status=status, customer_id=customer_id)


@router.get("/{quote_id}", response_model=QuoteView)
async def get_quote(
    quote_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取报价单详情（按角色投影）"""
    return await visibility_service.get_quote(db, policy, quote_id)


@router.get("/{quote_id}/history", response_model=List[QuoteVersionResponse])
async def get_quote_history(
    quote_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取报价单全部版本"""
    return await quote_service.get_quote_history(db, policy, quote_id)


@router.post("/{quote_id}/price", response_model=QuoteView)
async def price_quote(
    quote_id: UUID,
    request: QuotePriceRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """员工定价并发送报价"""
    quote = await quote_service.price_quote(db, policy, quote_id, request)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.post("/{quote_id}/revise", response_model=QuoteView, status_code=201)
async def revise_quote(
    quote_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """修订报价，返回新版本草稿"""
    quote = await quote_service.revise_quote(db, policy, quote_id)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.post("/{quote_id}/approve", response_model=QuoteView)
async def approve_quote(
    quote_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """客户批准报价"""
    quote = await quote_service.approve_quote(db, policy, quote_id)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.post("/{quote_id}/reject", response_model=QuoteView)
async def reject_quote(
    quote_id: UUID,
    request: QuoteRejectRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """客户拒绝报价"""
    quote = await quote_service.reject_quote(db, policy, quote_id, request.reason)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.post("/{quote_id}/rating", response_model=QuoteView)
async def rate_deal(
    quote_id: UUID,
    request: DealRatingRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """员工为交易评分"""
    quote = await quote_service.rate_deal(db, policy, quote_id, request.rating)
    return await visibility_service.get_quote(db, policy, quote.id)


@router.post("/{quote_id}/items/{item_id}/supplier", response_model=AssignmentResult)
async def assign_supplier_to_item(
    quote_id: UUID,
    item_id: UUID,
    request: AssignSupplierToItemRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """为单个明细指派供应商"""
    return await assignment_service.assign_supplier_to_item(db, policy, quote_id, item_id, request)


@router.post("/{quote_id}/category-assignment", response_model=AssignmentResult)
async def assign_supplier_to_category(
    quote_id: UUID,
    request: AssignSupplierToCategoryRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """按品类批量指派供应商"""
    return await assignment_service.assign_supplier_to_category(db, policy, quote_id, request)


@router.post("/{quote_id}/attachments", response_model=AttachmentResponse, status_code=201)
async def add_quote_attachment(
    quote_id: UUID,
    request: AttachmentCreateRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """上传报价附件"""
    return await attachment_service.add_quote_attachment(db, policy, quote_id, request)
