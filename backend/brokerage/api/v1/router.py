"""
API v1 路由汇总
"""
from fastapi import APIRouter

from brokerage.api.v1.endpoints import customers, jobs, quotes, suppliers

api_router = APIRouter()

api_router.include_router(customers.router, prefix="/customers", tags=["客户"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["报价单"])
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["供应商"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["供应商任务"])
