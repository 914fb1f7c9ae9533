"""
供应商相关数据模型：长期报价、供应商任务、评分权重
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, Index, Numeric, Text, Boolean, Uuid, text
)

from brokerage.core.database import Base


class SupplierPrice(Base):
    """供应商长期报价表"""
    __tablename__ = "supplier_prices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="报价ID")
    supplier_id = Column(Uuid, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, comment="供应商")
    sku_id = Column(Uuid, ForeignKey('skus.id', ondelete='CASCADE'), nullable=False, comment="SKU")
    price_per_unit = Column(Numeric(12, 2), nullable=False, comment="单价")
    delivery_days = Column(Integer, nullable=False, default=3, comment="交付天数")
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        Index('uq_supplier_sku', 'supplier_id', 'sku_id', unique=True),
        Index('ix_price_sku', 'sku_id'),
        {'comment': '供应商长期报价表'}
    )


class SupplierJob(Base):
    """供应商任务表：一个报价明细对应一个供应商的履约工作"""
    __tablename__ = "supplier_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="任务ID")
    quote_id = Column(Uuid, ForeignKey('quotes.id'), nullable=False, comment="报价单")
    quote_item_id = Column(Uuid, ForeignKey('quote_items.id'), nullable=False, comment="报价明细")
    supplier_id = Column(Uuid, ForeignKey('users.id'), nullable=False, comment="供应商")
    customer_id = Column(Uuid, ForeignKey('users.id'), nullable=False, comment="客户")
    sku_id = Column(Uuid, ForeignKey('skus.id'), nullable=False, comment="SKU")
    quantity = Column(Integer, nullable=False, comment="数量")
    price_per_unit = Column(Numeric(12, 2), nullable=False, comment="供应商单价")
    promised_delivery_days = Column(Integer, comment="承诺交付天数")
    status = Column(String(20), nullable=False, default="pending", comment="状态")
    supplier_accepted_at = Column(DateTime, comment="供应商接单时间")
    supplier_ready_at = Column(DateTime, comment="供应商备货完成时间")
    supplier_rating = Column(Integer, comment="供应商评分(1-5)")
    picked_up_at = Column(DateTime, comment="取件时间")
    picked_up_by = Column(Uuid, comment="取件快递员")
    delivered_at = Column(DateTime, comment="送达时间")
    delivered_by = Column(Uuid, comment="送达快递员")
    is_cancelled = Column(Boolean, nullable=False, default=False, comment="是否取消")
    cancelled_at = Column(DateTime, comment="取消时间")
    cancelled_reason = Column(Text, comment="取消原因")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        Index('ix_job_quote', 'quote_id'),
        Index('ix_job_supplier', 'supplier_id'),
        Index('ix_job_status', 'status'),
        Index(
            'uq_job_active_per_item', 'quote_item_id', unique=True,
            postgresql_where=text("NOT is_cancelled"),
            sqlite_where=text("NOT is_cancelled")
        ),
        {'comment': '供应商任务表'}
    )


class SupplierWeightConfig(Base):
    """供应商评分权重配置（按版本追加，最新版本生效）"""
    __tablename__ = "supplier_weight_configs"

    version = Column(Integer, primary_key=True, autoincrement=False, comment="配置版本")
    price = Column(Integer, nullable=False, comment="价格权重")
    rating = Column(Integer, nullable=False, comment="评分权重")
    delivery_time = Column(Integer, nullable=False, comment="交付时间权重")
    reliability = Column(Integer, nullable=False, comment="可靠性权重")
    updated_by = Column(Uuid, comment="修改人")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")

    __table_args__ = (
        {'comment': '供应商评分权重配置表'},
    )
