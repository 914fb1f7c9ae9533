"""
报价单数据模型
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, Index, Numeric, Text, Boolean, JSON, Uuid, text
)

from brokerage.core.database import Base


class Quote(Base):
    """报价单主表（追加式版本链）"""
    __tablename__ = "quotes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="报价单ID")
    quote_number = Column(Integer, nullable=False, comment="报价单编号（版本链共用）")
    customer_id = Column(Uuid, ForeignKey('users.id'), nullable=False, comment="客户")
    employee_id = Column(Uuid, ForeignKey('users.id'), comment="报价员工")
    status = Column(String(20), nullable=False, default="draft", comment="状态")
    version = Column(Integer, nullable=False, default=1, comment="版本号")
    root_quote_id = Column(Uuid, nullable=False, comment="版本链根报价单ID")
    parent_quote_id = Column(Uuid, ForeignKey('quotes.id'), comment="上一版本")
    final_value = Column(Numeric(12, 2), comment="报价总金额")
    rejection_reason = Column(Text, comment="拒绝原因")
    deal_rating = Column(Integer, comment="交易评分(1-10)")
    auto_production = Column(Boolean, nullable=False, default=False, comment="批准后自动投产")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    __table_args__ = (
        Index('ix_quote_root', 'root_quote_id'),
        Index('ix_quote_customer', 'customer_id'),
        Index('ix_quote_status', 'status'),
        Index('ix_quote_created_at', 'created_at'),
        Index('uq_quote_number_version', 'quote_number', 'version', unique=True),
        Index(
            'uq_quote_current_per_chain', 'root_quote_id', unique=True,
            postgresql_where=text("status <> 'superseded'"),
            sqlite_where=text("status <> 'superseded'")
        ),
        {'comment': '报价单主表'}
    )


class QuoteItem(Base):
    """报价明细表"""
    __tablename__ = "quote_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="明细ID")
    quote_id = Column(Uuid, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, comment="所属报价单")
    sku_id = Column(Uuid, ForeignKey('skus.id'), nullable=False, comment="SKU")
    quantity = Column(Integer, nullable=False, comment="数量")
    price_at_time_of_quote = Column(Numeric(12, 2), comment="报价时单价（离开草稿后不可变）")
    is_upsell = Column(Boolean, nullable=False, default=False, comment="是否追加销售")
    supplier_id = Column(Uuid, ForeignKey('users.id'), comment="指派供应商")
    supplier_cost = Column(Numeric(12, 2), comment="供应商成本快照")
    delivery_days = Column(Integer, comment="供应商交付天数快照")
    addon_ids = Column(JSON, nullable=False, default=list, comment="附加项")
    sort_order = Column(Integer, nullable=False, default=0, comment="排序顺序")
    created_at = Column(DateTime, nullable=False, default=datetime.now, comment="创建时间")

    __table_args__ = (
        Index('ix_item_quote', 'quote_id'),
        Index('ix_item_sort_order', 'quote_id', 'sort_order'),
        {'comment': '报价明细表'}
    )


class QuoteAttachment(Base):
    """报价附件表"""
    __tablename__ = "quote_attachments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="附件ID")
    quote_id = Column(Uuid, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, comment="所属报价单")
    quote_item_id = Column(Uuid, ForeignKey('quote_items.id'), comment="所属明细（可空表示整单）")
    file_name = Column(String(255), nullable=False, comment="文件名")
    file_url = Column(Text, nullable=False, comment="文件地址")
    file_size = Column(Integer, comment="文件大小(字节)")
    mime_type = Column(String(100), comment="MIME类型")
    uploaded_by = Column(Uuid, comment="上传人")
    uploaded_at = Column(DateTime, nullable=False, default=datetime.now, comment="上传时间")

    __table_args__ = (
        Index('ix_attachment_quote', 'quote_id'),
        {'comment': '报价附件表'}
    )
