"""
供应商任务API端点
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.database import get_db
from brokerage.core.security import AccessPolicy, get_access_policy
from brokerage.schemas.job import JobCancelRequest, JobRateRequest
from brokerage.schemas.quote import AttachmentResponse
from brokerage.schemas.views import JobView
from brokerage.services.attachment_service import attachment_service
from brokerage.services.job_service import job_service
from brokerage.services.visibility_service import visibility_service

router = APIRouter()


@router.get("/", response_model=List[JobView])
async def list_jobs(
    status: Optional[str] = Query(None, description="状态筛选"),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """
    获取任务列表

    供应商只能看到自己的任务，快递员看到待取件和运输中的任务
    """
    return await visibility_service.list_jobs(db, policy, status=status)


@router.get("/{job_id}", response_model=JobView)
async def get_job(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取任务详情（按角色投影）"""
    return await visibility_service.get_job(db, policy, job_id)


@router.post("/{job_id}/accept", response_model=JobView)
async def accept_job(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """供应商接单"""
    return await job_service.accept_job(db, policy, job_id)


@router.post("/{job_id}/ready", response_model=JobView)
async def mark_job_ready(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """供应商备货完成"""
    return await job_service.mark_job_ready(db, policy, job_id)


@router.post("/{job_id}/pickup", response_model=JobView)
async def mark_picked_up(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """快递员取件"""
    return await job_service.mark_picked_up(db, policy, job_id)


@router.post("/{job_id}/deliver", response_model=JobView)
async def mark_delivered(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """快递员确认送达"""
    return await job_service.mark_delivered(db, policy, job_id)


@router.post("/{job_id}/cancel", response_model=JobView)
async def cancel_job(
    job_id: UUID,
    request: JobCancelRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """取消任务"""
    return await job_service.cancel_job(db, policy, job_id, request.reason)


@router.post("/{job_id}/rating", response_model=JobView)
async def rate_job(
    job_id: UUID,
    request: JobRateRequest = Body(...),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """员工为供应商任务评分"""
    return await job_service.rate_job(db, policy, job_id, request.rating)


@router.get("/{job_id}/attachments", response_model=List[AttachmentResponse])
async def list_job_attachments(
    job_id: UUID,
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_db)
):
    """获取任务相关附件，任务取消后为空"""
    return await attachment_service.list_job_attachments(db, policy, job_id)
