"""
用户数据模型（客户、供应商、快递员、员工、管理员）
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Index, Text, Uuid

from brokerage.core.database import Base


class User(Base):
    """用户表"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="用户ID")
    role = Column(String(20), nullable=False, comment="角色")
    name = Column(String(255), nullable=False, comment="姓名")
    company = Column(String(255), comment="公司名称")
    email = Column(String(255), unique=True, comment="邮箱")
    phone = Column(String(50), comment="电话")
    address = Column(Text, comment="地址")
    status = Column(String(20), nullable=False, default="active", comment="状态")
    customer_number = Column(Integer, unique=True, comment="客户编号（仅客户）")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        Index('ix_user_role', 'role'),
        Index('ix_user_role_status', 'role', 'status'),
        {'comment': '用户表'}
    )
