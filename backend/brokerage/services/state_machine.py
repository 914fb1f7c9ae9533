"""
报价单与供应商任务的状态机定义

只描述合法的 (当前状态 -> 目标状态) 边，实际写入由各服务通过
带状态条件的 UPDATE 完成（乐观并发守卫）。
"""
from datetime import datetime
from typing import Dict, FrozenSet

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from brokerage.core.middleware import ConcurrencyConflict, InvalidStateTransition


class QuoteStatus:
    """报价单状态"""
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"
    IN_PRODUCTION = "in_production"
    READY = "ready"

    ALL = (DRAFT, SENT, APPROVED, REJECTED, SUPERSEDED, IN_PRODUCTION, READY)


class JobStatus:
    """供应商任务状态（取消以 is_cancelled 标记为终态）"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY = "ready"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = (PENDING, ACCEPTED, READY, PICKED_UP, DELIVERED)
    CANCELLABLE = (PENDING, ACCEPTED, READY)
    # 已备货或更靠后的状态
    READY_OR_LATER = (READY, PICKED_UP, DELIVERED)


QUOTE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({
        QuoteStatus.APPROVED,
        QuoteStatus.IN_PRODUCTION,  # 批准且满足自动投产
        QuoteStatus.REJECTED,
        QuoteStatus.SUPERSEDED,
    }),
    QuoteStatus.APPROVED: frozenset({QuoteStatus.SUPERSEDED, QuoteStatus.IN_PRODUCTION}),
    QuoteStatus.IN_PRODUCTION: frozenset({QuoteStatus.READY}),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.SUPERSEDED: frozenset(),
    QuoteStatus.READY: frozenset(),
}

JOB_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    JobStatus.PENDING: frozenset({JobStatus.ACCEPTED, JobStatus.CANCELLED}),
    JobStatus.ACCEPTED: frozenset({JobStatus.READY, JobStatus.CANCELLED}),
    JobStatus.READY: frozenset({JobStatus.PICKED_UP, JobStatus.CANCELLED}),
    JobStatus.PICKED_UP: frozenset({JobStatus.DELIVERED}),
    JobStatus.DELIVERED: frozenset(),
}


def is_quote_transition_allowed(current: str, target: str) -> bool:
    return target in QUOTE_TRANSITIONS.get(current, frozenset())


def ensure_quote_transition(current: str, target: str) -> None:
    if not is_quote_transition_allowed(current, target):
        raise InvalidStateTransition("报价单", current, target)


def ensure_job_transition(current: str, is_cancelled: bool, target: str) -> None:
    """已取消的任务不允许任何流转"""
    if is_cancelled:
        raise InvalidStateTransition("供应商任务", JobStatus.CANCELLED, target)
    if target not in JOB_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransition("供应商任务", current, target)


async def apply_guarded_status(
    db: AsyncSession,
    entity,
    expected_status: str,
    new_status: str,
    extra_criteria=(),
    **values
) -> None:
    """
    带状态守卫的更新

    在同一事务内以 `WHERE id = :id AND status = :expected` 写入新状态，
    影响行数不为1说明已被其他操作者抢先修改，抛出 ConcurrencyConflict。
    写入成功后同步内存对象，避免再次触发UPDATE。
    """
    model = type(entity)
    values.setdefault("updated_at", datetime.now())
    values["status"] = new_status

    stmt = (
        update(model)
        .where(model.id == entity.id, model.status == expected_status, *extra_criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if result.rowcount != 1:
        raise ConcurrencyConflict(
            f"{model.__tablename__} [{entity.id}] 状态已被其他操作修改",
            details={"expected": expected_status, "requested": new_status}
        )

    for key, value in values.items():
        set_committed_value(entity, key, value)
