import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from paycore.domain import Coupon, DiscountType, Order, OrderStatus, PaymentMethod, Product
from paycore.store import InMemoryStore

STORE_ID = "loja-1"


@pytest.fixture
def store():
    return InMemoryStore(
        (Product("1", "Terço de Madeira", Decimal("50.00"), 10),),
        (
            Coupon("c1", "FE10", DiscountType.PERCENTAGE, Decimal("10"), usage_limit=5),
            Coupon("c5", "INATIVO", DiscountType.PERCENTAGE, Decimal("50"), active=False),
        ),
        STORE_ID,
    )


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


def test_decrement_is_atomic_across_threads(store):
    """Каждая сессия Streamlit - свой поток и свой event loop"""

    def buy_one(_):
        return asyncio.run(store.decrement_stock("1", 1))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(buy_one, range(40)))

    assert results.count(True) == 10
    assert asyncio.run(store.get_product("1")).stock == 0


def test_order_numbers_unique_across_threads(store):
    def place(i):
        return asyncio.run(store.create_order(make_order(f"o{i}"), STORE_ID)).order_number

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(place, range(20)))

    assert sorted(numbers) == list(range(1, 21))


def test_coupon_usage_across_threads(store):
    def use(_):
        return asyncio.run(store.increment_coupon_usage("c1"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(use, range(12)))

    assert results.count(True) == 5


@pytest.mark.asyncio
async def test_inactive_coupon_is_not_used(store):
    assert await store.increment_coupon_usage("c5") is False
    assert await store.increment_coupon_usage("nope") is False


@pytest.mark.asyncio
async def test_catalog_belongs_to_its_store(store):
    assert len(await store.list_products(STORE_ID)) == 1
    assert len(await store.list_coupons(STORE_ID)) == 2
    assert await store.list_products("outra-loja") == []
    assert await store.list_coupons("outra-loja") == []
