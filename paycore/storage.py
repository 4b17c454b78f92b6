import json
import logging
import os
from typing import MutableMapping, Optional

from .domain import Cart, CartItem, to_money

logger = logging.getLogger(__name__)


def serialize_cart(cart: Cart) -> str:
    return json.dumps(
        [
            {
                "product_id": i.product_id,
                "name": i.name,
                "price": str(i.price),
                "promotional_price": (
                    str(i.promotional_price) if i.promotional_price else None
                ),
                "category": i.category,
                "quantity": i.quantity,
            }
            for i in cart.items
        ],
        ensure_ascii=False,
    )


def deserialize_cart(raw: Optional[str]) -> Cart:
    """
    Восстанавливает корзину из строки.
    Пустое, битое или не то значение -> пустая корзина, без исключений.
    Строки с quantity < 1 отбрасываются.
    """
    if not raw:
        return Cart()
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("cart payload is not a list")

        items = []
        for entry in data:
            quantity = int(entry["quantity"])
            if quantity < 1:
                continue
            promo = entry.get("promotional_price")
            items.append(
                CartItem(
                    product_id=str(entry["product_id"]),
                    name=str(entry["name"]),
                    price=to_money(entry["price"]),
                    quantity=quantity,
                    category=str(entry.get("category") or ""),
                    promotional_price=to_money(promo) if promo else None,
                )
            )
        return Cart(items=tuple(items))
    except (ValueError, TypeError, KeyError, ArithmeticError) as exc:
        logger.warning("Discarding malformed stored cart: %s", exc)
        return Cart()


class CartStorage:
    """Локальное хранилище корзины клиента"""

    def load(self) -> Cart:
        raise NotImplementedError

    def save(self, cart: Cart) -> None:
        raise NotImplementedError


class MappingCartStorage(CartStorage):
    """Хранит корзину строкой в dict-подобном объекте (например st.session_state)"""

    def __init__(self, mapping: MutableMapping, key: str = "cart"):
        self.mapping = mapping
        self.key = key

    def load(self) -> Cart:
        return deserialize_cart(self.mapping.get(self.key))

    def save(self, cart: Cart) -> None:
        self.mapping[self.key] = serialize_cart(cart)


class JsonFileCartStorage(CartStorage):
    def __init__(self, path: str):
        self.path = path

    def load(self) -> Cart:
        if not os.path.exists(self.path):
            return Cart()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as exc:
            logger.warning("Cannot read cart file %s: %s", self.path, exc)
            return Cart()
        return deserialize_cart(raw)

    def save(self, cart: Cart) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(serialize_cart(cart))
