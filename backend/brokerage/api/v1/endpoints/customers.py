"""
客户API端点
"""
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.database import get_db
from brokerage.core.security import AccessPolicy, get_access_policy
from brokerage.schemas.customer import (
    CustomerCreateRequest, CustomerResponse, CustomerWithQuoteRequest, CustomerWithQuoteResponse
)
from brokerage.services.customer_service import customer_service

router = APIRouter()


@router.post("/", response_model=CustomerResponse, status_code=201)
async def create_customer(
    request: CustomerCreateRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """员工创建客户"""
    return await customer_service.create_customer(db, policy, request)


@router.post("/with-quote", response_model=CustomerWithQuoteResponse, status_code=201)
async def create_customer_with_quote(
    request: CustomerWithQuoteRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """
    创建客户并发起报价

    已存在同邮箱客户时复用该客户
    """
    customer, quote = await customer_service.create_customer_with_quote(db, policy, request)
    return CustomerWithQuoteResponse(customer=customer, quote=quote)


@router.get("/", response_model=List[CustomerResponse])
async def list_customers(
    keyword: Optional[str] = Query(None, description="关键词搜索"),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """客户列表"""
    return await customer_service.list_customers(db, policy, keyword)
