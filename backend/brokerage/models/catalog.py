"""
产品目录数据模型
"""
import uuid
from sqlalchemy import Column, String, Integer, ForeignKey, Index, Uuid

from brokerage.core.database import Base


class Product(Base):
    """基础产品表"""
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="产品ID")
    name = Column(String(255), nullable=False, comment="产品名称")
    category = Column(String(100), nullable=False, comment="产品类别")

    __table_args__ = (
        Index('ix_product_category', 'category'),
        {'comment': '基础产品表'}
    )


class Sku(Base):
    """SKU表：基础产品的尺寸+数量组合，供应商按SKU报价"""
    __tablename__ = "skus"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, comment="SKU ID")
    product_id = Column(Uuid, ForeignKey('products.id', ondelete='CASCADE'), nullable=False, comment="所属产品")
    size_label = Column(String(100), nullable=False, comment="尺寸")
    quantity = Column(Integer, nullable=False, comment="规格数量")

    __table_args__ = (
        Index('ix_sku_product', 'product_id'),
        {'comment': 'SKU表'}
    )
