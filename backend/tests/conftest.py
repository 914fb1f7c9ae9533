"""
测试配置和测试数据工厂
"""
import os

# 测试时不写日志文件
os.environ.setdefault("LOG_TO_FILE", "0")

import pytest
from decimal import Decimal
from typing import Optional
from uuid import uuid4
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from brokerage.core.database import get_db, init_db
from brokerage.core.security import AccessPolicy, Actor, Role, resolve_policy
from brokerage.main import create_app
from brokerage.models.catalog import Product, Sku
from brokerage.models.supplier import SupplierJob, SupplierPrice
from brokerage.models.user import User
from brokerage.schemas.quote import (
    ItemPriceRequest, QuoteCreateRequest, QuoteItemRequest, QuotePriceRequest
)
from brokerage.schemas.supplier import AssignSupplierToItemRequest
from brokerage.services.assignment_service import assignment_service
from brokerage.services.quote_service import quote_service


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """每个测试一个独立的SQLite数据库文件"""
    url = f"sqlite+aiosqlite:///{tmp_path / 'brokerage_test.db'}"
    test_engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30}
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    """测试会话工厂"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory):
    """测试数据库会话"""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_factory):
    """创建测试客户端"""
    from httpx import AsyncClient, ASGITransport

    app = create_app(configure_logs=False)

    # 覆盖依赖：每个请求独立会话
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== 测试数据工厂 ====================

def policy_of(user: User) -> AccessPolicy:
    """按用户角色解析访问策略"""
    return resolve_policy(Actor(user_id=user.id, role=user.role))


def headers_of(user: User) -> dict:
    """身份请求头"""
    return {"X-User-Id": str(user.id), "X-User-Role": user.role}


class DataFactory:
    """测试数据工厂：返回的行均已脱离会话，服务层回滚不会使其过期"""

    @staticmethod
    def _detach(db: AsyncSession, row):
        db.expunge(row)
        return row

    @staticmethod
    async def create_user(
        db: AsyncSession,
        role: str,
        name: Optional[str] = None,
        **fields
    ) -> User:
        suffix = uuid4().hex[:6]
        user = User(
            role=role,
            name=name or f"{role}-{suffix}",
            email=fields.pop("email", f"{role}-{suffix}@example.com"),
            phone=fields.pop("phone", "13800000000"),
            address=fields.pop("address", f"{role}地址-{suffix}"),
            **fields
        )
        db.add(user)
        await db.commit()
        return DataFactory._detach(db, user)

    @staticmethod
    async def create_sku(
        db: AsyncSession,
        category: str = "名片",
        product_name: Optional[str] = None,
        size_label: str = "90x54mm",
        quantity: int = 500
    ) -> Sku:
        product = Product(name=product_name or f"{category}-{uuid4().hex[:4]}", category=category)
        db.add(product)
        await db.flush()

        sku = Sku(product_id=product.id, size_label=size_label, quantity=quantity)
        db.add(sku)
        await db.commit()
        return DataFactory._detach(db, sku)

    @staticmethod
    async def create_supplier_price(
        db: AsyncSession,
        supplier: User,
        sku: Sku,
        price: str,
        delivery_days: int = 3
    ) -> SupplierPrice:
        supplier_price = SupplierPrice(
            supplier_id=supplier.id,
            sku_id=sku.id,
            price_per_unit=Decimal(price),
            delivery_days=delivery_days
        )
        db.add(supplier_price)
        await db.commit()
        return DataFactory._detach(db, supplier_price)

    @staticmethod
    async def create_draft_quote(db: AsyncSession, customer: User, skus, quantity: int = 100):
        """客户发起草稿报价，每个SKU一个明细"""
        request = QuoteCreateRequest(items=[QuoteItemRequest(sku_id=s.id, quantity=quantity) for s in skus])
        return await quote_service.create_quote_request(db, policy_of(customer), request)

    @staticmethod
    async def create_sent_quote(
        db: AsyncSession,
        customer: User,
        staff: User,
        skus,
        price: str = "10.00",
        auto_production: bool = False
    ):
        """草稿报价定价并发送"""
        draft = await DataFactory.create_draft_quote(db, customer, skus)
        request = QuotePriceRequest(
            items=[ItemPriceRequest(item_id=item.id, price=Decimal(price)) for item in draft.items],
            final_value=Decimal(price) * len(draft.items) * 100,
            auto_production=auto_production
        )
        return await quote_service.price_quote(db, policy_of(staff), draft.id, request)

    @staticmethod
    async def create_production_quote(
        db: AsyncSession,
        customer: User,
        staff: User,
        supplier: User,
        skus,
        supplier_cost: str = "6.00",
        delivery_days: int = 3
    ):
        """全部明细指派同一供应商，自动投产并由客户批准"""
        quote = await DataFactory.create_sent_quote(db, customer, staff, skus, auto_production=True)
        for item in quote.items:
            await assignment_service.assign_supplier_to_item(
                db, policy_of(staff), quote.id, item.id,
                AssignSupplierToItemRequest(
                    supplier_id=supplier.id,
                    supplier_cost=Decimal(supplier_cost),
                    delivery_days=delivery_days
                )
            )
        return await quote_service.approve_quote(db, policy_of(customer), quote.id)

    @staticmethod
    async def list_jobs(db: AsyncSession, quote_id):
        result = await db.execute(
            select(SupplierJob).where(SupplierJob.quote_id == quote_id).order_by(SupplierJob.created_at)
        )
        jobs = list(result.scalars().all())
        for job in jobs:
            db.expunge(job)
        return jobs


@pytest.fixture
def factory():
    return DataFactory


@pytest.fixture
async def staff(db_session):
    return await DataFactory.create_user(db_session, Role.EMPLOYEE, name="员工小王")


@pytest.fixture
async def admin(db_session):
    return await DataFactory.create_user(db_session, Role.ADMIN, name="管理员")


@pytest.fixture
async def customer(db_session):
    return await DataFactory.create_user(
        db_session, Role.CUSTOMER, name="客户张三", company="张三印务", address="客户路1号", phone="13900000001"
    )


@pytest.fixture
async def courier(db_session):
    return await DataFactory.create_user(db_session, Role.COURIER, name="快递员")


@pytest.fixture
async def supplier(db_session):
    return await DataFactory.create_user(
        db_session, Role.SUPPLIER, name="供应商甲", company="甲印刷厂", address="工厂路8号", phone="13700000001"
    )


@pytest.fixture
async def other_supplier(db_session):
    return await DataFactory.create_user(db_session, Role.SUPPLIER, name="供应商乙", company="乙印刷厂")


@pytest.fixture
async def sku(db_session):
    return await DataFactory.create_sku(db_session, category="名片", product_name="铜版纸名片")


@pytest.fixture
def policy():
    """用户 -> 访问策略"""
    return policy_of


@pytest.fixture
def headers():
    """用户 -> 身份请求头"""
    return headers_of
