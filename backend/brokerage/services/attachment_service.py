"""
报价附件服务

附件写入前先经文件校验协作方检查；任务被取消后，
该任务的供应商与快递员不再能读取附件。
"""
from typing import List, Optional, Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from brokerage.core.config import settings
from brokerage.core.middleware import (
    AuthorizationError, InvalidStateTransition, NotFoundError, ValidationError
)
from brokerage.core.security import AccessPolicy, PolicyKind
from brokerage.models.quote import Quote, QuoteAttachment, QuoteItem
from brokerage.models.supplier import SupplierJob
from brokerage.schemas.quote import AttachmentCreateRequest, AttachmentResponse
from brokerage.services.activity_service import log_activity
from brokerage.services.state_machine import QuoteStatus


class FileValidator(Protocol):
    def validate(self, file_name: str, mime_type: Optional[str], file_size: Optional[int]) -> List[str]:
        """返回问题列表，空列表表示通过"""
        ...


class DefaultFileValidator:
    """按配置的MIME白名单与大小上限校验"""

    def __init__(self, allowed_types: List[str] = None, max_size_mb: int = None):
        self.allowed_types = [t.strip() for t in (allowed_types or settings.ALLOWED_ATTACHMENT_TYPES)]
        self.max_size_mb = max_size_mb or settings.MAX_ATTACHMENT_SIZE_MB

    def validate(self, file_name: str, mime_type: Optional[str], file_size: Optional[int]) -> List[str]:
        problems = []
        if not file_name or not file_name.strip():
            problems.append("文件名不能为空")
        if mime_type and mime_type not in self.allowed_types:
            problems.append(f"不支持的文件类型: {mime_type}")
        if file_size is not None and file_size > self.max_size_mb * 1024 * 1024:
            problems.append(f"文件大小超过限制: {self.max_size_mb}MB")
        return problems


class AttachmentService:
    """报价附件服务"""

    def __init__(self, validator: FileValidator = None):
        self.validator = validator or DefaultFileValidator()

    async def add_quote_attachment(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        quote_id: UUID,
        data: AttachmentCreateRequest
    ) -> AttachmentResponse:
        """为报价单或其中一个明细上传附件（客户本人或员工）"""
        try:
            if policy.kind not in (PolicyKind.CUSTOMER, PolicyKind.STAFF):
                raise AuthorizationError("无权上传报价附件")

            quote = (await db.execute(select(Quote).where(Quote.id == quote_id))).scalars().first()
            if not quote:
                raise NotFoundError("报价单", quote_id)
            if not policy.is_staff and quote.customer_id != policy.user_id:
                raise AuthorizationError("无权访问该报价单")
            if quote.status == QuoteStatus.SUPERSEDED:
                raise InvalidStateTransition("报价单", quote.status, "attachment_added")

            if data.quote_item_id:
                item = (await db.execute(
                    select(QuoteItem.id).where(
                        QuoteItem.id == data.quote_item_id,
                        QuoteItem.quote_id == quote_id
                    )
                )).first()
                if not item:
                    raise NotFoundError("报价明细", data.quote_item_id)

            problems = self.validator.validate(data.file_name, data.mime_type, data.file_size)
            if problems:
                raise ValidationError("附件校验未通过", {"problems": problems})

            attachment = QuoteAttachment(
                quote_id=quote_id,
                quote_item_id=data.quote_item_id,
                file_name=data.file_name,
                file_url=data.file_url,
                file_size=data.file_size,
                mime_type=data.mime_type,
                uploaded_by=policy.user_id
            )
            db.add(attachment)
            await db.flush()

            log_activity(db, policy.user_id, "attachment_added", {
                "quote_id": quote_id, "file_name": data.file_name
            })

            await db.commit()
            logger.info(f"报价 {quote_id} 上传附件: {data.file_name}")
        except Exception as e:
            await db.rollback()
            logger.error(f"上传附件失败: {e}")
            raise

        return AttachmentResponse.model_validate(attachment)

    async def list_job_attachments(
        self,
        db: AsyncSession,
        policy: AccessPolicy,
        job_id: UUID
    ) -> List[AttachmentResponse]:
        """
        任务相关附件：整单附件加该任务明细的附件

        任务已取消时返回空列表。
        """
        job = (await db.execute(
            select(SupplierJob).where(SupplierJob.id == job_id).execution_options(populate_existing=True)
        )).scalars().first()
        if not job:
            raise NotFoundError("供应商任务", job_id)

        if policy.kind == PolicyKind.SUPPLIER:
            if job.supplier_id != policy.user_id:
                raise AuthorizationError("只能查看分配给自己的任务")
        elif policy.kind not in (PolicyKind.COURIER, PolicyKind.STAFF):
            raise AuthorizationError("无权查看任务附件")

        if job.is_cancelled:
            return []

        result = await db.execute(
            select(QuoteAttachment)
            .where(
                QuoteAttachment.quote_id == job.quote_id,
                or_(
                    QuoteAttachment.quote_item_id.is_(None),
                    QuoteAttachment.quote_item_id == job.quote_item_id
                )
            )
            .order_by(QuoteAttachment.uploaded_at)
        )
        return [AttachmentResponse.model_validate(a) for a in result.scalars().all()]


# 创建全局服务实例
attachment_service = AttachmentService()
