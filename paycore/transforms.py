import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import reduce
from typing import Iterable, Optional, Tuple

from .domain import (
    Cart,
    CartItem,
    CartTotals,
    Coupon,
    DiscountType,
    OrderItem,
    PaymentMethod,
    Product,
    to_money,
)
from .ftypes import Either, Failure, FailureKind, Maybe
from .messaging import format_brl

ZERO = Decimal("0.00")


def _product_from_dict(p: dict) -> Product:
    promo = p.get("promotional_price")
    return Product(
        id=str(p["id"]),
        name=str(p["name"]),
        price=to_money(p["price"]),
        stock=int(p.get("stock", 0)),
        category=str(p.get("category", "")),
        promotional_price=to_money(promo) if promo else None,
        active=bool(p.get("active", True)),
    )


def _coupon_from_dict(c: dict) -> Coupon:
    min_spend = c.get("min_spend")
    return Coupon(
        id=str(c["id"]),
        code=str(c["code"]),
        discount_type=DiscountType(c.get("type", "percentage")),
        value=to_money(c["value"]),
        min_spend=to_money(min_spend) if min_spend else None,
        usage_limit=c.get("usage_limit") or None,
        usage_count=int(c.get("usage_count", 0)),
        expires_at=c.get("expires_at"),
        active=bool(c.get("active", True)),
    )


def load_seed(path: str) -> Tuple[Tuple[Product, ...], Tuple[Coupon, ...]]:
    """Загружает seed.json и возвращает кортежи товаров и купонов"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    products = tuple(map(_product_from_dict, data.get("products", [])))
    coupons = tuple(map(_coupon_from_dict, data.get("coupons", [])))
    return products, coupons


# ============ Cart operations (чистые функции) ============


def snapshot_item(product: Product, qty: int) -> CartItem:
    """Копия полей товара на момент добавления в корзину"""
    return CartItem(
        product_id=product.id,
        name=product.name,
        price=product.price,
        quantity=qty,
        category=product.category,
        promotional_price=product.promotional_price,
    )


def add_item(cart: Cart, product: Product, qty: int) -> Cart:
    """
    Возвращает новый Cart с добавленным товаром.
    Остаток на складе здесь не проверяется - только при оформлении.
    """
    if qty <= 0:
        return cart

    existing = next((i for i in cart.items if i.product_id == product.id), None)
    if existing:
        updated = tuple(
            replace(i, quantity=i.quantity + qty)
            if i.product_id == product.id
            else i
            for i in cart.items
        )
    else:
        updated = cart.items + (snapshot_item(product, qty),)

    return Cart(items=updated)


def update_quantity(cart: Cart, product_id: str, qty: int) -> Cart:
    """qty <= 0 удаляет строку, иначе задаёт количество"""
    if qty <= 0:
        return remove_item(cart, product_id)
    return Cart(
        items=tuple(
            replace(i, quantity=qty) if i.product_id == product_id else i
            for i in cart.items
        )
    )


def remove_item(cart: Cart, product_id: str) -> Cart:
    return Cart(items=tuple(filter(lambda i: i.product_id != product_id, cart.items)))


def clear_cart(cart: Cart) -> Cart:
    return Cart(items=())


def cart_subtotal(cart: Cart) -> Decimal:
    """Сумма по строкам: (промо-цена или цена) * количество"""
    return reduce(lambda acc, i: acc + i.line_total, cart.items, ZERO)


def cart_item_count(cart: Cart) -> int:
    return sum(i.quantity for i in cart.items)


def order_items(cart: Cart) -> Tuple[OrderItem, ...]:
    """Снимок корзины для заказа: цена покупки, а не текущая цена"""
    return tuple(
        OrderItem(
            product_id=i.product_id,
            name=i.name,
            price=to_money(i.unit_price),
            quantity=i.quantity,
        )
        for i in cart.items
    )


# ============ Купоны ============


def find_coupon(coupons: Iterable[Coupon], code: str) -> Maybe[Coupon]:
    """Поиск активного купона без учёта регистра"""
    wanted = (code or "").strip().upper()
    found = next(
        (c for c in coupons if c.active and c.code.strip().upper() == wanted), None
    )
    return Maybe.of(found)


def _parse_expiry(value: str) -> datetime:
    if len(value) == 10:
        # только дата: купон действует до конца этого дня
        day = datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
        return day + timedelta(days=1)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_expired(coupon: Coupon, now: datetime) -> bool:
    if not coupon.expires_at:
        return False
    return _parse_expiry(coupon.expires_at) < now


def validate_coupon(
    coupons: Iterable[Coupon],
    code: str,
    subtotal: Decimal,
    now: Optional[datetime] = None,
) -> Either[Failure, Coupon]:
    """
    Проверки идут в фиксированном порядке, первая ошибка побеждает:
      1. активный купон с таким кодом существует
      2. сумма корзины >= минимальной
      3. лимит использований не исчерпан
      4. срок действия не истёк
    """
    now = now or datetime.now(timezone.utc)

    def check_min_spend(coupon: Coupon) -> Either[Failure, Coupon]:
        if coupon.min_spend and subtotal < coupon.min_spend:
            return Either.fail(
                FailureKind.COUPON_MIN_SPEND,
                f"Valor mínimo para este cupom: {format_brl(coupon.min_spend)}",
            )
        return Either.right(coupon)

    def check_limit(coupon: Coupon) -> Either[Failure, Coupon]:
        if coupon.has_limit and coupon.usage_count >= coupon.usage_limit:
            return Either.fail(
                FailureKind.COUPON_LIMIT_REACHED,
                "Este cupom atingiu o limite de uso.",
            )
        return Either.right(coupon)

    def check_expiry(coupon: Coupon) -> Either[Failure, Coupon]:
        if is_expired(coupon, now):
            return Either.fail(FailureKind.COUPON_EXPIRED, "Este cupom expirou.")
        return Either.right(coupon)

    return (
        find_coupon(coupons, code)
        .to_either(Failure(FailureKind.COUPON_INVALID, "Cupom inválido ou expirado."))
        .bind(check_min_spend)
        .bind(check_limit)
        .bind(check_expiry)
    )


def coupon_discount(coupon: Optional[Coupon], subtotal: Decimal) -> Decimal:
    """percentage: subtotal * value / 100; fixed: value как есть"""
    if coupon is None:
        return ZERO
    if coupon.discount_type is DiscountType.PERCENTAGE:
        return to_money(subtotal * coupon.value / 100)
    return to_money(coupon.value)


# ============ Итоги ============


def compute_totals(
    subtotal: Decimal,
    coupon_off: Decimal,
    payment_method: PaymentMethod,
    pix_percent: Decimal = Decimal("5"),
) -> CartTotals:
    """
    Скидка за Pix считается от суммы после купона.
    Купон не может быть больше суммы корзины, итог не уходит ниже нуля.
    """
    subtotal = to_money(subtotal)
    coupon_off = min(to_money(coupon_off), subtotal)
    after_coupon = subtotal - coupon_off

    if PaymentMethod(payment_method) is PaymentMethod.PIX:
        payment_off = to_money(after_coupon * Decimal(pix_percent) / 100)
    else:
        payment_off = ZERO

    total = max(after_coupon - payment_off, ZERO)
    return CartTotals(
        subtotal=subtotal,
        coupon_discount=coupon_off,
        payment_discount=payment_off,
        total=to_money(total),
    )


# ============ Проверка остатков ============


def validate_stock(cart: Cart, products: Iterable[Product]) -> Either[Failure, Cart]:
    """
    Сверяет корзину с актуальными остатками.
    Left(Failure) на первом отсутствующем товаре или нехватке остатка.
    """
    live = {p.id: p for p in products}

    def check_item(acc: Either[Failure, Cart], item: CartItem) -> Either[Failure, Cart]:
        if acc.is_left:
            return acc

        product = live.get(item.product_id)
        if product is None:
            return Either.fail(
                FailureKind.NOT_FOUND, f"Produto {item.name} não encontrado."
            )
        if product.stock < item.quantity:
            return Either.fail(
                FailureKind.INSUFFICIENT_STOCK,
                f"Estoque insuficiente para {item.name}. Disponível: {product.stock}",
            )
        return acc

    return reduce(check_item, cart.items, Either.right(cart))
