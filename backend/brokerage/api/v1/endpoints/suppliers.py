"""
供应商推荐、评分权重与长期报价API端点
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.database import get_db
from brokerage.core.security import AccessPolicy, get_access_policy
from brokerage.schemas.supplier import (
    CategoryRecommendation, CategoryRecommendationRequest, SupplierPriceRequest,
    SupplierPriceResponse, SupplierScore, SupplierStatsResponse,
    SupplierWeights, SupplierWeightsResponse
)
from brokerage.services.scoring_service import scoring_service
from brokerage.services.supplier_service import supplier_service

router = APIRouter()


@router.get("/recommendations", response_model=List[SupplierScore])
async def recommend_suppliers(
    sku_id: UUID = Query(..., description="SKU"),
    quantity: int = Query(1, ge=1, description="数量"),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """
    单个SKU的供应商推荐

    按综合得分降序排列
    """
    return await scoring_service.recommend_suppliers(db, policy, sku_id, quantity)


@router.post("/recommendations/category", response_model=List[CategoryRecommendation])
async def recommend_by_category(
    request: CategoryRecommendationRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """按品类推荐能覆盖整组SKU的供应商"""
    return await scoring_service.recommend_by_category(db, policy, request.items)


@router.get("/weights", response_model=SupplierWeightsResponse)
async def get_supplier_weights(
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取当前评分权重"""
    policy.require("can_view_recommendations", "只有员工可以查看评分权重")
    return await scoring_service.get_weights(db)


@router.put("/weights", response_model=SupplierWeightsResponse)
async def update_supplier_weights(
    request: SupplierWeights = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """更新评分权重（仅管理员，总和必须为100）"""
    return await scoring_service.update_weights(db, policy, request)


@router.put("/prices", response_model=SupplierPriceResponse)
async def upsert_supplier_price(
    request: SupplierPriceRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """新增或更新供应商长期报价"""
    return await supplier_service.upsert_supplier_price(db, policy, request)


@router.get("/prices", response_model=List[SupplierPriceResponse])
async def list_supplier_prices(
    supplier_id: Optional[UUID] = Query(None, description="供应商（员工查询时必填）"),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """查询供应商长期报价"""
    return await supplier_service.list_supplier_prices(db, policy, supplier_id)


@router.get("/{supplier_id}/stats", response_model=SupplierStatsResponse)
async def get_supplier_stats(
    supplier_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """供应商历史统计"""
    return await supplier_service.get_supplier_stats(db, policy, supplier_id)
