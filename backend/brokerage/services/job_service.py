"""
供应商任务履约服务

pending -> accepted -> ready -> picked_up -> delivered，
pending/accepted/ready 可取消（is_cancelled 终态，保留记录用于可靠性统计）。
报价单在每个明细的未取消任务均已备货后进入 ready。
"""
from typing import List
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.middleware import (
    AuthorizationError, InvalidStateTransition, NotFoundError, ValidationError
)
from brokerage.core.security import AccessPolicy, Role
from brokerage.models.quote import Quote, QuoteItem
from brokerage.models.supplier import SupplierJob
from brokerage.services.activity_service import log_activity
from brokerage.services.notification_service import (
    NotificationEvent, Notifier, default_notifier, dispatch_notifications
)
from brokerage.services.state_machine import (
    JobStatus, QuoteStatus, apply_guarded_status, ensure_job_transition
)
from brokerage.services.visibility_service import VisibilityService, visibility_service


class JobService:
    """供应商任务服务"""

    def __init__(self, notifier: Notifier = None, visibility: VisibilityService = None):
        self.notifier = notifier or default_notifier
        self.visibility = visibility or visibility_service

    async def _get_job(self, db: AsyncSession, job_id: UUID) -> SupplierJob:
        result = await db.execute(
            select(SupplierJob).where(SupplierJob.id == job_id).execution_options(populate_existing=True)
        )
        job = result.scalars().first()
        if not job:
            raise NotFoundError("供应商任务", job_id)
        return job

    @staticmethod
    def _ensure_own_job(policy: AccessPolicy, job: SupplierJob) -> None:
        if policy.actor.role != Role.SUPPLIER or job.supplier_id != policy.user_id:
            raise AuthorizationError("只能操作分配给自己的任务")

    async def _promote_quote_if_ready(
        self,
        db: AsyncSession,
        quote_id: UUID,
        actor_id: UUID,
        events: List[NotificationEvent]
    ) -> bool:
        """
        每个明细都有未取消且已备货（ready 或更靠后）的任务时，报价 in_production -> ready

        明细的任务被取消而尚未重新指派时，报价保持 in_production。

        先锁定报价行，同一报价的并发备货/取消按顺序检查。
        """
        result = await db.execute(
            select(Quote)
            .where(Quote.id == quote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        quote = result.scalars().first()
        if not quote or quote.status != QuoteStatus.IN_PRODUCTION:
            return False

        item_ids = set((await db.execute(
            select(QuoteItem.id).where(QuoteItem.quote_id == quote_id)
        )).scalars().all())
        active = (await db.execute(
            select(SupplierJob.quote_item_id, SupplierJob.status).where(
                SupplierJob.quote_id == quote_id,
                SupplierJob.is_cancelled.is_(False)
            )
        )).all()

        ready_items = {item_id for item_id, status in active if status in JobStatus.READY_OR_LATER}
        if not item_ids or ready_items != item_ids or len(ready_items) != len(active):
            return False

        await apply_guarded_status(db, quote, QuoteStatus.IN_PRODUCTION, QuoteStatus.READY)
        log_activity(db, actor_id, "quote_ready", {"quote_id": quote_id, "jobs_count": len(active)})
        events.append(("quote.ready", {"quote_id": str(quote_id), "customer_id": str(quote.customer_id)}))
        logger.info(f"报价 #{quote.quote_number} 全部任务已备货，进入 ready")
        return True

    async def _transition(
        self,
        db: AsyncSession,
        job: SupplierJob,
        target: str,
        **values
    ) -> None:
        ensure_job_transition(job.status, job.is_cancelled, target)
        await apply_guarded_status(
            db, job, job.status, target,
            extra_criteria=(SupplierJob.is_cancelled.is_(False),),
            **values
        )

    # ==================== 供应商操作 ====================

    async def accept_job(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID):
        """供应商接单（员工可代供应商操作）：pending -> accepted"""
        events: List[NotificationEvent] = []
        try:
            job = await self._get_job(db, job_id)
            if not policy.can_act_for_supplier:
                policy.require("can_fulfil_as_supplier", "只有供应商可以接单")
                self._ensure_own_job(policy, job)

            await self._transition(db, job, JobStatus.ACCEPTED, supplier_accepted_at=datetime.now())

            log_activity(db, policy.user_id, "job_accepted", {"job_id": job_id, "supplier_id": job.supplier_id})
            events.append(("job.accepted", {"job_id": str(job_id), "quote_id": str(job.quote_id)}))

            await db.commit()
            logger.info(f"供应商任务 {job_id} 已接单")
        except Exception as e:
            await db.rollback()
            logger.error(f"接单失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.visibility.get_job(db, policy, job_id)

    async def mark_job_ready(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID):
        """供应商备货完成：accepted -> ready，并检查报价是否整体就绪"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_fulfil_as_supplier", "只有供应商可以标记备货完成")
            job = await self._get_job(db, job_id)
            self._ensure_own_job(policy, job)

            await self._transition(db, job, JobStatus.READY, supplier_ready_at=datetime.now())

            log_activity(db, policy.user_id, "job_ready", {"job_id": job_id})
            events.append(("job.ready", {"job_id": str(job_id), "quote_id": str(job.quote_id)}))

            await self._promote_quote_if_ready(db, job.quote_id, policy.user_id, events)

            await db.commit()
            logger.info(f"供应商任务 {job_id} 备货完成")
        except Exception as e:
            await db.rollback()
            logger.error(f"标记备货完成失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.visibility.get_job(db, policy, job_id)

    # ==================== 快递员操作 ====================

    async def mark_picked_up(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID):
        """快递员取件：ready -> picked_up"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_carry_jobs", "只有快递员可以取件")
            job = await self._get_job(db, job_id)

            await self._transition(
                db, job, JobStatus.PICKED_UP,
                picked_up_at=datetime.now(),
                picked_up_by=policy.user_id
            )

            log_activity(db, policy.user_id, "job_picked_up", {"job_id": job_id})
            events.append(("job.picked_up", {"job_id": str(job_id), "courier_id": str(policy.user_id)}))

            await db.commit()
            logger.info(f"供应商任务 {job_id} 已被快递员 {policy.user_id} 取件")
        except Exception as e:
            await db.rollback()
            logger.error(f"取件失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.visibility.get_job(db, policy, job_id)

    async def mark_delivered(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID):
        """快递员送达：picked_up -> delivered"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_carry_jobs", "只有快递员可以确认送达")
            job = await self._get_job(db, job_id)

            await self._transition(
                db, job, JobStatus.DELIVERED,
                delivered_at=datetime.now(),
                delivered_by=policy.user_id
            )

            log_activity(db, policy.user_id, "job_delivered", {"job_id": job_id})
            events.append(("job.delivered", {"job_id": str(job_id), "courier_id": str(policy.user_id)}))

            await db.commit()
            logger.info(f"供应商任务 {job_id} 已送达")
        except Exception as e:
            await db.rollback()
            logger.error(f"确认送达失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.visibility.get_job(db, policy, job_id)

    # ==================== 员工操作 ====================

    async def cancel_job(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID, reason: str):
        """取消任务：取件前任意时刻，状态保留，标记 is_cancelled"""
        events: List[NotificationEvent] = []
        try:
            policy.require("can_cancel_jobs", "只有员工可以取消任务")

            if not reason or not reason.strip():
                raise ValidationError("取消原因不能为空")

            job = await self._get_job(db, job_id)
            if job.is_cancelled:
                raise InvalidStateTransition("供应商任务", JobStatus.CANCELLED, JobStatus.CANCELLED)
            if job.status not in JobStatus.CANCELLABLE:
                raise InvalidStateTransition("供应商任务", job.status, JobStatus.CANCELLED)

            await apply_guarded_status(
                db, job, job.status, job.status,
                extra_criteria=(SupplierJob.is_cancelled.is_(False),),
                is_cancelled=True,
                cancelled_at=datetime.now(),
                cancelled_reason=reason.strip()
            )

            log_activity(db, policy.user_id, "job_cancelled", {"job_id": job_id, "reason": reason.strip()})
            events.append(("job.cancelled", {
                "job_id": str(job_id), "supplier_id": str(job.supplier_id), "reason": reason.strip()
            }))

            await self._promote_quote_if_ready(db, job.quote_id, policy.user_id, events)

            await db.commit()
            logger.info(f"供应商任务 {job_id} 已取消: {reason.strip()}")
        except Exception as e:
            await db.rollback()
            logger.error(f"取消任务失败: {e}")
            raise

        dispatch_notifications(self.notifier, events)
        return await self.visibility.get_job(db, policy, job_id)

    async def rate_job(self, db: AsyncSession, policy: AccessPolicy, job_id: UUID, rating: int):
        """员工为供应商任务评分（1-5），计入评分引擎的历史统计"""
        try:
            policy.require("can_rate", "只有员工可以为供应商评分")

            if not isinstance(rating, int) or isinstance(rating, bool) or rating < 1 or rating > 5:
                raise ValidationError("供应商评分必须在1到5之间")

            job = await self._get_job(db, job_id)
            if job.is_cancelled:
                raise InvalidStateTransition("供应商任务", JobStatus.CANCELLED, "rated")
            if job.status not in JobStatus.READY_OR_LATER:
                raise InvalidStateTransition("供应商任务", job.status, "rated")

            job.supplier_rating = rating
            log_activity(db, policy.user_id, "job_rated", {"job_id": job_id, "rating": rating})

            await db.commit()
            logger.info(f"供应商任务 {job_id} 评分: {rating}/5")
        except Exception as e:
            await db.rollback()
            logger.error(f"供应商评分失败: {e}")
            raise

        return await self.visibility.get_job(db, policy, job_id)


# 创建全局服务实例
job_service = JobService()
