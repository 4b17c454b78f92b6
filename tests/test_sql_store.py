import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from paycore.checkout import CheckoutOrchestrator
from paycore.db import functions
from paycore.domain import Cart, Order, OrderStatus, PaymentMethod, StoreSettings
from paycore.ftypes import FailureKind
from paycore.service import OrderService
from paycore.sql_store import SqlStore
from paycore.transforms import add_item, load_seed

SEED_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")
STORE_ID = "loja-1"


@pytest.fixture
def settings(tmp_path):
    return StoreSettings(
        store_id=STORE_ID,
        store_name="Lojinha",
        pix_key="loja@example.com",
        merchant_name="Lojinha",
        merchant_city="Sao Luis",
        whatsapp_number="5598984095956",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}",
    )


async def make_store(settings) -> SqlStore:
    """Новая SQLite-база во временной папке с товарами и купонами из seed.json"""
    store = SqlStore(settings.database_url)
    await store.create_all()
    products, coupons = load_seed(SEED_PATH)
    await store.seed(products, coupons, STORE_ID)
    return store


@pytest.mark.asyncio
async def test_seed_and_read_back(settings):
    store = await make_store(settings)
    try:
        products = {p.id: p for p in await store.list_products(STORE_ID)}
        assert len(products) == 5
        assert products["2"].promotional_price == Decimal("79.90")
        assert products["1"].price == Decimal("50.00")
        assert await store.get_product("999") is None

        coupons = {c.code: c for c in await store.list_coupons(STORE_ID)}
        assert coupons["FE10"].usage_count == 3
        assert coupons["INATIVO"].active is False
        assert await store.list_products("outra-loja") == []
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_conditional_decrement(settings):
    store = await make_store(settings)
    try:
        assert await store.decrement_stock("4", 1) is True
        assert await store.decrement_stock("4", 1) is False
        assert (await store.get_product("4")).stock == 0

        await store.restock("4", 2)
        await store.update_stock("1", 3)
        assert (await store.get_product("4")).stock == 2
        assert (await store.get_product("1")).stock == 3
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_coupon_usage_respects_limit(settings):
    store = await make_store(settings)
    try:
        assert await store.increment_coupon_usage("c1") is True
        assert await store.increment_coupon_usage("c2") is True  # лимит 0 = без ограничений
        assert await store.increment_coupon_usage("c4") is False
        assert await store.increment_coupon_usage("c5") is False  # неактивный
        assert await store.increment_coupon_usage("nope") is False

        coupons = {c.id: c for c in await store.list_coupons(STORE_ID)}
        assert coupons["c1"].usage_count == 4
        assert coupons["c4"].usage_count == 5
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_checkout_and_order_lifecycle(settings):
    store = await make_store(settings)
    try:
        products = {p.id: p for p in await store.list_products(STORE_ID)}
        coupons = {c.code: c for c in await store.list_coupons(STORE_ID)}
        orchestrator = CheckoutOrchestrator(
            store, settings, clock=lambda: datetime(2025, 6, 1, tzinfo=timezone.utc)
        )

        cart = add_item(Cart(), products["1"], 2)
        first = await orchestrator.checkout(cart, "Maria", coupon=coupons["FE10"])
        second = await orchestrator.checkout(cart, "Ana")

        assert first.is_right and second.is_right
        assert first.value.display_id == "0001"
        assert second.value.display_id == "0002"
        assert first.value.totals.total == Decimal("85.50")
        assert (await store.get_product("1")).stock == 6

        saved = await store.get_order(first.value.order.id)
        assert saved.total == Decimal("85.50")
        assert saved.items[0].name == "Terço de Madeira"
        assert saved.items[0].quantity == 2
        assert saved.order_number == 1

        orders = OrderService(store, settings)
        assert (await orders.confirm_payment(saved.id)).is_right
        assert (await orders.amend_customer_contact(saved.id, phone="98999990000")).is_right

        saved = await store.get_order(saved.id)
        assert saved.status is OrderStatus.PAID
        assert saved.customer_phone == "98999990000"
        assert saved.total == Decimal("85.50")

        metrics = await orders.metrics()
        assert metrics["total_orders"] == 2
        assert metrics["total_revenue"] == Decimal("85.50")
        assert metrics["pending_orders"] == 1
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_checkout_stock_guard(settings):
    store = await make_store(settings)
    try:
        biblia = await store.get_product("4")
        result = await CheckoutOrchestrator(store, settings).checkout(
            add_item(Cart(), biblia, 2), "Maria"
        )
        assert result.failure.kind is FailureKind.INSUFFICIENT_STOCK
        assert (await store.get_product("4")).stock == 1
        assert await store.list_orders(STORE_ID) == []
    finally:
        await store.dispose()


def make_order(order_id):
    return Order(
        id=order_id,
        customer_name="Maria",
        items=(),
        total=Decimal("10.00"),
        status=OrderStatus.PENDING,
        payment_method=PaymentMethod.PIX,
        created_at="2025-06-01T12:00:00+00:00",
    )


@pytest.mark.asyncio
async def test_order_number_collision_is_retried(settings, monkeypatch):
    """Параллельная вставка заняла номер: уникальный индекс отклоняет дубль, номер берётся заново"""
    store = await make_store(settings)
    try:
        await store.create_order(make_order("first"), STORE_ID)

        real_next = functions._next_order_number
        calls = []

        async def stale_then_real(db, store_id):
            calls.append(store_id)
            if len(calls) == 1:
                return 1
            return await real_next(db, store_id)

        monkeypatch.setattr(functions, "_next_order_number", stale_then_real)
        created = await store.create_order(make_order("second"), STORE_ID)

        assert created.order_number == 2
        assert len(calls) == 2
        numbers = sorted(o.order_number for o in await store.list_orders(STORE_ID))
        assert numbers == [1, 2]
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_order_number_collision_gives_up(settings, monkeypatch):
    store = await make_store(settings)
    try:
        await store.create_order(make_order("first"), STORE_ID)

        async def always_taken(db, store_id):
            return 1

        monkeypatch.setattr(functions, "_next_order_number", always_taken)
        with pytest.raises(IntegrityError):
            await store.create_order(make_order("second"), STORE_ID)
        assert [o.id for o in await store.list_orders(STORE_ID)] == ["first"]
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_expired_coupon_rejected_at_checkout(settings):
    store = await make_store(settings)
    try:
        products = {p.id: p for p in await store.list_products(STORE_ID)}
        coupons = {c.code: c for c in await store.list_coupons(STORE_ID)}
        orchestrator = CheckoutOrchestrator(
            store, settings, clock=lambda: datetime(2025, 6, 1, tzinfo=timezone.utc)
        )

        result = await orchestrator.checkout(
            add_item(Cart(), products["1"], 2), "Maria", coupon=coupons["NATAL"]
        )

        assert result.failure.kind is FailureKind.COUPON_EXPIRED
        assert (await store.get_product("1")).stock == 10
        assert await store.list_orders(STORE_ID) == []
    finally:
        await store.dispose()
