"""
系统数据模型：编号计数器、操作日志
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Index, JSON, Uuid

from brokerage.core.database import Base


class SequenceCounter(Base):
    """编号计数器表"""
    __tablename__ = "sequence_counters"

    name = Column(String(50), primary_key=True, comment="计数器名称")
    value = Column(Integer, nullable=False, comment="最后分配的编号")

    __table_args__ = (
        {'comment': '编号计数器表'},
    )


class ActivityLog(Base):
    """操作日志表"""
    __tablename__ = "activity_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="日志ID")
    user_id = Column(Uuid, comment="操作人")
    action_type = Column(String(100), nullable=False, comment="操作类型")
    summary = Column(String(500), comment="变更摘要")
    details = Column(JSON, comment="详情")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")

    __table_args__ = (
        Index('ix_activity_user', 'user_id'),
        Index('ix_activity_created_at', 'created_at'),
        {'comment': '操作日志表'}
    )
