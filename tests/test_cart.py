import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

import pytest
from paycore.domain import Cart, Coupon, DiscountType, PaymentMethod, Product, StoreSettings
from paycore.service import CartService
from paycore.storage import (
    JsonFileCartStorage,
    MappingCartStorage,
    deserialize_cart,
    serialize_cart,
)
from paycore.store import InMemoryStore
from paycore.transforms import (
    add_item,
    cart_item_count,
    cart_subtotal,
    clear_cart,
    compute_totals,
    order_items,
    remove_item,
    update_quantity,
)


@pytest.fixture
def products():
    return (
        Product("1", "Terço de Madeira", Decimal("50.00"), 10, "Terços"),
        Product("2", "Vela Votiva", Decimal("12.00"), 30, "Velas", Decimal("9.90")),
        Product("3", "Imagem de Nossa Senhora", Decimal("120.00"), 1, "Imagens"),
    )


@pytest.fixture
def coupons():
    return (
        Coupon("c2", "GRACAS20", DiscountType.FIXED, Decimal("20.00"), min_spend=Decimal("150.00")),
    )


@pytest.fixture
def settings():
    return StoreSettings(
        store_id="loja-1",
        store_name="Lojinha",
        pix_key="loja@example.com",
        merchant_name="Lojinha",
        merchant_city="Sao Luis",
        whatsapp_number="5598984095956",
    )


@pytest.fixture
def service(products, coupons, settings):
    store = InMemoryStore(products, coupons, settings.store_id)
    return CartService(MappingCartStorage({}), store, settings)


# ============ Чистые функции корзины ============


def test_add_item_merges_lines(products):
    terco = products[0]
    cart = add_item(Cart(), terco, 1)
    cart = add_item(cart, terco, 2)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3


def test_add_item_ignores_non_positive_qty(products):
    cart = Cart()
    assert add_item(cart, products[0], 0) is cart
    assert add_item(cart, products[0], -2) is cart


def test_add_item_does_not_check_stock(products):
    """Остаток проверяется только при оформлении"""
    cart = add_item(Cart(), products[2], 5)
    assert cart.items[0].quantity == 5


def test_update_and_remove(products):
    cart = add_item(add_item(Cart(), products[0], 1), products[1], 2)
    cart = update_quantity(cart, "1", 4)
    assert [i.quantity for i in cart.items] == [4, 2]

    cart = update_quantity(cart, "2", 0)
    assert [i.product_id for i in cart.items] == ["1"]

    assert remove_item(cart, "1").items == ()
    assert clear_cart(cart).items == ()


def test_subtotal_uses_promotional_price(products):
    cart = add_item(add_item(Cart(), products[0], 2), products[1], 3)
    assert cart_subtotal(cart) == Decimal("129.70")
    assert cart_item_count(cart) == 5


def test_order_items_snapshot_purchase_price(products):
    cart = add_item(Cart(), products[1], 2)
    (item,) = order_items(cart)
    assert item.price == Decimal("9.90")
    assert item.quantity == 2


def test_original_cart_is_not_mutated(products):
    cart = add_item(Cart(), products[0], 1)
    add_item(cart, products[0], 5)
    assert cart.items[0].quantity == 1


# ============ Итоги ============


def test_totals_pix_discount():
    totals = compute_totals(Decimal("100"), Decimal("0"), PaymentMethod.PIX)
    assert totals.payment_discount == Decimal("5.00")
    assert totals.total == Decimal("95.00")


def test_totals_pix_after_coupon():
    totals = compute_totals(Decimal("200"), Decimal("20"), PaymentMethod.PIX)
    assert totals.coupon_discount == Decimal("20.00")
    assert totals.payment_discount == Decimal("9.00")
    assert totals.total == Decimal("171.00")


def test_totals_card_has_no_payment_discount():
    for method in (PaymentMethod.CREDIT, PaymentMethod.DEBIT):
        totals = compute_totals(Decimal("100"), Decimal("10"), method)
        assert totals.payment_discount == Decimal("0.00")
        assert totals.total == Decimal("90.00")


def test_totals_coupon_capped_at_subtotal():
    totals = compute_totals(Decimal("15"), Decimal("20"), PaymentMethod.PIX)
    assert totals.coupon_discount == Decimal("15.00")
    assert totals.total == Decimal("0.00")


def test_totals_rounding_half_up():
    # 5% от 10.10 = 0.505 -> 0.51
    totals = compute_totals(Decimal("10.10"), Decimal("0"), PaymentMethod.PIX)
    assert totals.payment_discount == Decimal("0.51")
    assert totals.total == Decimal("9.59")


# ============ Хранилище корзины ============


def test_storage_serialization_keeps_items(products):
    cart = add_item(add_item(Cart(), products[0], 2), products[1], 1)
    restored = deserialize_cart(serialize_cart(cart))
    assert restored == cart


@pytest.mark.parametrize(
    "raw",
    [None, "", "not json", "{}", "[1, 2]", '[{"product_id": "1"}]'],
)
def test_malformed_storage_gives_empty_cart(raw):
    assert deserialize_cart(raw) == Cart()


def test_storage_drops_zero_quantity_lines():
    raw = '[{"product_id": "1", "name": "X", "price": "1.00", "quantity": 0}]'
    assert deserialize_cart(raw).items == ()


def test_json_file_storage(tmp_path, products):
    path = str(tmp_path / "cart.json")
    storage = JsonFileCartStorage(path)
    assert storage.load() == Cart()

    cart = add_item(Cart(), products[0], 3)
    storage.save(cart)
    assert JsonFileCartStorage(path).load() == cart


def test_json_file_storage_corrupted(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text("{{{", encoding="utf-8")
    assert JsonFileCartStorage(str(path)).load() == Cart()


# ============ CartService ============


def test_service_persists_every_change(service, products):
    service.add_item(products[0], 2)
    assert deserialize_cart(service.storage.mapping["cart"]).items[0].quantity == 2

    service.update_quantity("1", 1)
    assert deserialize_cart(service.storage.mapping["cart"]).items[0].quantity == 1

    service.remove_item("1")
    assert deserialize_cart(service.storage.mapping["cart"]) == Cart()


def test_service_restores_cart_from_storage(products, settings):
    mapping = {}
    first = CartService(MappingCartStorage(mapping), InMemoryStore(products), settings)
    first.add_item(products[0], 2)

    second = CartService(MappingCartStorage(mapping), InMemoryStore(products), settings)
    assert second.item_count == 2
    assert second.subtotal == Decimal("100.00")


def test_service_totals(service, products):
    service.add_item(products[0], 2)
    totals = service.totals(PaymentMethod.PIX)
    assert totals.subtotal == Decimal("100.00")
    assert totals.payment_discount == Decimal("5.00")
    assert totals.total == Decimal("95.00")
    assert service.totals(PaymentMethod.CREDIT).total == Decimal("100.00")


@pytest.mark.asyncio
async def test_service_apply_coupon(service, products):
    service.add_item(products[0], 2)
    result = await service.apply_coupon("gracas20")
    assert result.is_left
    assert service.applied_coupon is None

    service.add_item(products[0], 1)
    result = await service.apply_coupon("gracas20")
    assert result.is_right
    assert service.coupon_discount == Decimal("20.00")
    assert service.totals(PaymentMethod.CREDIT).total == Decimal("130.00")


@pytest.mark.asyncio
async def test_service_drops_coupon_below_min_spend(service, products):
    service.add_item(products[0], 3)
    assert (await service.apply_coupon("GRACAS20")).is_right

    service.update_quantity("1", 2)
    assert service.applied_coupon is None
    assert service.coupon_discount == Decimal("0.00")


@pytest.mark.asyncio
async def test_service_clear_resets_coupon(service, products):
    service.add_item(products[0], 3)
    await service.apply_coupon("GRACAS20")
    service.clear()
    assert service.items == ()
    assert service.applied_coupon is None
