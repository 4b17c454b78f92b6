import logging
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .domain import Coupon, CreatedOrder, Order, Product
from .transforms import load_seed

logger = logging.getLogger(__name__)


class ShopStore:
    """
    Удалённое хранилище товаров, заказов и купонов.
    Все методы асинхронные: каждый вызов - отдельный сетевой запрос.
    """

    async def list_products(self, store_id: str) -> List[Product]:
        raise NotImplementedError

    async def get_product(self, product_id: str) -> Optional[Product]:
        raise NotImplementedError

    async def update_stock(self, product_id: str, new_stock: int) -> None:
        raise NotImplementedError

    async def decrement_stock(self, product_id: str, qty: int) -> bool:
        """Атомарно: stock -= qty только если stock >= qty. False - не хватило."""
        raise NotImplementedError

    async def restock(self, product_id: str, qty: int) -> None:
        raise NotImplementedError

    async def create_order(self, order: Order, store_id: str) -> CreatedOrder:
        raise NotImplementedError

    async def list_orders(self, store_id: str) -> List[Order]:
        raise NotImplementedError

    async def get_order(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    async def update_order(self, order: Order) -> None:
        raise NotImplementedError

    async def list_coupons(self, store_id: str) -> List[Coupon]:
        raise NotImplementedError

    async def update_coupon(self, coupon: Coupon) -> None:
        raise NotImplementedError

    async def increment_coupon_usage(self, coupon_id: str) -> bool:
        """Атомарно: usage_count += 1, если купон активен и лимит не исчерпан"""
        raise NotImplementedError


class InMemoryStore(ShopStore):
    """
    Хранилище в памяти процесса для одного магазина.
    Один threading.Lock на все изменения: экземпляр общий для всех сессий
    Streamlit (разные потоки и event loop). Внутри критических секций нет await.
    """

    def __init__(
        self,
        products: Iterable[Product] = (),
        coupons: Iterable[Coupon] = (),
        store_id: str = "",
    ):
        self.store_id = store_id
        self._products: Dict[str, Product] = {p.id: p for p in products}
        self._coupons: Dict[str, Coupon] = {c.id: c for c in coupons}
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_seed(cls, path: str, store_id: str = "") -> "InMemoryStore":
        products, coupons = load_seed(path)
        logger.info("Seeded %d products, %d coupons from %s", len(products), len(coupons), path)
        return cls(products, coupons, store_id)

    # ============ Товары ============

    async def list_products(self, store_id: str) -> List[Product]:
        if store_id != self.store_id:
            return []
        return list(self._products.values())

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    async def update_stock(self, product_id: str, new_stock: int) -> None:
        with self._lock:
            product = self._products[product_id]
            self._products[product_id] = replace(product, stock=new_stock)

    async def decrement_stock(self, product_id: str, qty: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or product.stock < qty:
                return False
            self._products[product_id] = replace(product, stock=product.stock - qty)
            return True

    async def restock(self, product_id: str, qty: int) -> None:
        with self._lock:
            product = self._products.get(product_id)
            if product is not None:
                self._products[product_id] = replace(product, stock=product.stock + qty)

    # ============ Заказы ============

    async def create_order(self, order: Order, store_id: str) -> CreatedOrder:
        with self._lock:
            numbers = [
                o.order_number
                for o in self._orders.values()
                if o.store_id == store_id and o.order_number is not None
            ]
            number = max(numbers, default=0) + 1
            self._orders[order.id] = replace(
                order, order_number=number, store_id=store_id
            )
        return CreatedOrder(id=order.id, order_number=number)

    async def list_orders(self, store_id: str) -> List[Order]:
        orders = [o for o in self._orders.values() if o.store_id == store_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def update_order(self, order: Order) -> None:
        with self._lock:
            existing = self._orders[order.id]
            # позиции и сумма заказа не меняются после создания
            self._orders[order.id] = replace(
                existing,
                status=order.status,
                customer_email=order.customer_email,
                customer_phone=order.customer_phone,
            )

    # ============ Купоны ============

    async def list_coupons(self, store_id: str) -> List[Coupon]:
        if store_id != self.store_id:
            return []
        return list(self._coupons.values())

    async def update_coupon(self, coupon: Coupon) -> None:
        with self._lock:
            self._coupons[coupon.id] = coupon

    async def increment_coupon_usage(self, coupon_id: str) -> bool:
        with self._lock:
            coupon = self._coupons.get(coupon_id)
            if coupon is None or not coupon.active:
                return False
            if coupon.has_limit and coupon.usage_count >= coupon.usage_limit:
                return False
            self._coupons[coupon_id] = replace(coupon, usage_count=coupon.usage_count + 1)
            return True
