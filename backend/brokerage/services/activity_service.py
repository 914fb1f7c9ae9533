"""
操作日志

与业务写入处于同一事务，回滚时日志一并撤销。
"""
from typing import Optional, Dict, Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.models.system import ActivityLog


def _generate_summary(action_type: str, details: Dict[str, Any]) -> str:
    """生成变更摘要"""
    summaries = {
        "customer_created": "创建客户",
        "quote_requested": f"发起报价请求，共{details.get('items_count', 0)}个商品",
        "quote_sent": "报价已定价并发送给客户",
        "quote_revised": f"修订报价，生成第{details.get('version', '?')}版",
        "quote_approved": "客户批准报价",
        "quote_in_production": f"报价投产，新建{details.get('jobs_count', 0)}个供应商任务",
        "quote_rejected": "客户拒绝报价",
        "quote_ready": "全部供应商任务已备货",
        "deal_rated": f"交易评分 {details.get('rating', '?')}/10",
        "supplier_assigned": f"指派供应商，共{details.get('items_count', 0)}个明细",
        "supplier_price_updated": "更新供应商长期报价",
        "supplier_weights_updated": "更新供应商评分权重",
        "job_accepted": "供应商接单",
        "job_ready": "供应商备货完成",
        "job_picked_up": "快递员取件",
        "job_delivered": "快递员送达",
        "job_cancelled": "取消供应商任务",
        "job_rated": f"供应商评分 {details.get('rating', '?')}/5",
        "attachment_added": "上传报价附件",
    }
    return summaries.get(action_type, "未知变更")


def _jsonable(details: Dict[str, Any]) -> Dict[str, Any]:
    return {key: str(value) if isinstance(value, UUID) else value for key, value in details.items()}


def log_activity(
    db: AsyncSession,
    user_id: Optional[UUID],
    action_type: str,
    details: Optional[Dict[str, Any]] = None
) -> ActivityLog:
    """在当前事务中追加一条操作日志"""
    details = details or {}
    entry = ActivityLog(
        user_id=user_id,
        action_type=action_type,
        summary=_generate_summary(action_type, details),
        details=_jsonable(details)
    )
    db.add(entry)
    return entry
