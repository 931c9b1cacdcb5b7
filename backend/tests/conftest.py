"""
测试夹具

每个测试使用 tmp_path 下独立的 SQLite 文件数据库。
注意：订单写操作以 BEGIN IMMEDIATE 开启事务，测试里直接读库前要保证其他会话已经提交或关闭。
"""
from datetime import datetime
from types import SimpleNamespace

import anyio
import pytest
from sqlalchemy import select
from sqlalchemy.pool import NullPool

from backoffice.config import Settings
from backoffice.database import build_engine, build_session_maker, init_db
from backoffice.models import (
    Customer,
    CustomerCategory,
    DeliveryPlace,
    Order,
    OrderDetail,
    PaymentMethod,
    Product,
    ProductPrice,
    ProductVariant,
    SalesChannel,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        enable_import_worker=False,
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings.database_url)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


async def seed_catalogue(session_maker) -> SimpleNamespace:
    """
    基础数据

    - KAOS：红色（默认规格，库存 10，normal 100 / member 90 / agent 0）、蓝色（库存 5，normal 100 / member 80）
    - TOPI：不跟踪库存，normal 60
    - KOSONG：有库存 3，没有价格记录
    """
    async with session_maker() as db:
        retail = Customer(name="Budi", category=CustomerCategory.CUSTOMER, phone_number="0811000111")
        member = Customer(name="Sari", category=CustomerCategory.MEMBER, phone_number="0822000222")
        reseller = Customer(name="Joko", category=CustomerCategory.RESELLER)
        agent = Customer(name="Agus", category=CustomerCategory.AGENT)
        bca = PaymentMethod(name="BCA", bank_name="Bank Central Asia")
        gopay = PaymentMethod(name="GoPay")
        place = DeliveryPlace(name="Gudang Utama")
        channel = SalesChannel(name="Shopee")

        red = ProductVariant(
            sku="KAOS-R",
            stock=10,
            created_at=datetime(2024, 1, 1),
            prices=[ProductPrice(normal=100.0, member=90.0, agent=0.0)],
        )
        blue = ProductVariant(
            sku="KAOS-B",
            stock=5,
            created_at=datetime(2024, 1, 2),
            prices=[ProductPrice(normal=100.0, member=80.0)],
        )
        kaos = Product(name="Kaos Polos", variants=[red, blue])

        cap = ProductVariant(sku="TOPI-1", stock=None, prices=[ProductPrice(normal=60.0)])
        topi = Product(name="Topi", variants=[cap])

        bare = ProductVariant(sku="KSG-1", stock=3, prices=[])
        kosong = Product(name="Kosong", variants=[bare])

        db.add_all([retail, member, reseller, agent, bca, gopay, place, channel, kaos, topi, kosong])
        await db.commit()

        return SimpleNamespace(
            retail=retail.id,
            member=member.id,
            reseller=reseller.id,
            agent=agent.id,
            bca=bca.id,
            gopay=gopay.id,
            place=place.id,
            channel=channel.id,
            kaos=kaos.id,
            red=red.id,
            blue=blue.id,
            topi=topi.id,
            cap=cap.id,
            kosong=kosong.id,
            bare=bare.id,
        )


@pytest.fixture
async def ids(session_maker):
    return await seed_catalogue(session_maker)


async def read_stock(session_maker, variant_id):
    async with session_maker() as db:
        result = await db.execute(select(ProductVariant.stock).where(ProductVariant.id == variant_id))
        return result.scalar_one()


async def count_orders(session_maker) -> int:
    async with session_maker() as db:
        result = await db.execute(select(Order.id))
        return len(result.all())


async def read_detail(session_maker, order_id):
    async with session_maker() as db:
        result = await db.execute(select(OrderDetail).where(OrderDetail.order_id == order_id))
        return result.scalar_one_or_none()


@pytest.fixture
def stock_of(session_maker):
    async def _stock(variant_id):
        return await read_stock(session_maker, variant_id)

    return _stock


@pytest.fixture
def order_count(session_maker):
    async def _count():
        return await count_orders(session_maker)

    return _count


@pytest.fixture
def detail_of(session_maker):
    async def _detail(order_id):
        return await read_detail(session_maker, order_id)

    return _detail


def order_payload(customer_id, lines, **detail):
    """构造创建订单的请求体"""
    payment = detail.pop("payment_method", {})
    shipping = detail.pop("shipping_services", [])
    return {
        "order": {"orderer_customer_id": customer_id},
        "order_detail": {
            "detail": detail,
            "payment_method": payment,
            "order_products": lines,
            "shipping_services": shipping,
        },
    }


@pytest.fixture
def make_payload():
    return order_payload


@pytest.fixture
def api_env(tmp_path, monkeypatch):
    """API 测试环境：NullPool 引擎（TestClient 在自己的事件循环里跑），覆盖 get_db"""
    from fastapi.testclient import TestClient

    from backoffice.config import get_settings
    from backoffice.database import get_db
    from backoffice.main import app

    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    get_settings.cache_clear()

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    maker = build_session_maker(engine)

    async def prepare():
        await init_db(bind=engine)
        return await seed_catalogue(maker)

    seeded = anyio.run(prepare)

    async def override_get_db():
        async with maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield SimpleNamespace(client=client, ids=seeded, session_maker=maker)

    app.dependency_overrides.clear()
    get_settings.cache_clear()
    anyio.run(engine.dispose)
