import logging
from dataclasses import replace
from decimal import Decimal
from functools import reduce
from typing import List, Optional, Tuple

from .checkout import CheckoutOrchestrator
from .domain import (
    Cart,
    CartItem,
    CartTotals,
    CheckoutReceipt,
    Coupon,
    Order,
    OrderStatus,
    PaymentMethod,
    Product,
    StoreSettings,
)
from .ftypes import Either, Failure, FailureKind, Maybe
from .storage import CartStorage
from .store import ShopStore
from .transforms import (
    add_item,
    cart_item_count,
    cart_subtotal,
    clear_cart,
    compute_totals,
    coupon_discount,
    remove_item,
    update_quantity,
    validate_coupon,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.CANCELLED),
    OrderStatus.PAID: (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
}


class CartService:
    """
    Корзина одной сессии покупателя.
    Создаётся при старте сессии, каждое изменение сразу сохраняется в storage.
    """

    def __init__(self, storage: CartStorage, store: ShopStore, settings: StoreSettings):
        self.storage = storage
        self.store = store
        self.settings = settings
        self.cart: Cart = storage.load()
        self.applied_coupon: Optional[Coupon] = None

    def _commit(self, cart: Cart) -> Cart:
        self.cart = cart
        self.storage.save(cart)
        self._recheck_coupon()
        return cart

    def _recheck_coupon(self) -> None:
        coupon = self.applied_coupon
        if coupon and coupon.min_spend and self.subtotal < coupon.min_spend:
            logger.info("Dropping coupon %s: cart below minimum spend", coupon.code)
            self.applied_coupon = None

    @property
    def items(self) -> Tuple[CartItem, ...]:
        return self.cart.items

    @property
    def item_count(self) -> int:
        return cart_item_count(self.cart)

    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.cart)

    @property
    def coupon_discount(self) -> Decimal:
        return min(coupon_discount(self.applied_coupon, self.subtotal), self.subtotal)

    def add_item(self, product: Product, qty: int = 1) -> Cart:
        return self._commit(add_item(self.cart, product, qty))

    def update_quantity(self, product_id: str, qty: int) -> Cart:
        return self._commit(update_quantity(self.cart, product_id, qty))

    def remove_item(self, product_id: str) -> Cart:
        return self._commit(remove_item(self.cart, product_id))

    def clear(self) -> Cart:
        self.applied_coupon = None
        return self._commit(clear_cart(self.cart))

    async def apply_coupon(self, code: str) -> Either[Failure, Coupon]:
        """Купон запоминается, но usage_count растёт только при оформлении"""
        coupons = await self.store.list_coupons(self.settings.store_id)
        result = validate_coupon(coupons, code, self.subtotal)
        if result.is_right:
            self.applied_coupon = result.value
            logger.info("Coupon %s applied", result.value.code)
        return result

    def remove_coupon(self) -> None:
        self.applied_coupon = None

    def totals(self, payment_method: PaymentMethod = PaymentMethod.PIX) -> CartTotals:
        return compute_totals(
            self.subtotal,
            coupon_discount(self.applied_coupon, self.subtotal),
            payment_method,
            self.settings.pix_discount_percent,
        )

    async def checkout(
        self,
        customer_name: str,
        notes: str = "",
        payment_method: PaymentMethod = PaymentMethod.PIX,
        orchestrator: Optional[CheckoutOrchestrator] = None,
    ) -> Either[Failure, CheckoutReceipt]:
        """Оформляет заказ; при успехе корзина и купон очищаются"""
        orchestrator = orchestrator or CheckoutOrchestrator(self.store, self.settings)
        result = await orchestrator.checkout(
            self.cart,
            customer_name,
            notes,
            payment_method,
            coupon=self.applied_coupon,
        )
        if result.is_right:
            self.clear()
        return result


class OrderService:
    """Фасад для работы с заказами после оформления"""

    def __init__(self, store: ShopStore, settings: StoreSettings):
        self.store = store
        self.settings = settings

    async def list_orders(self) -> List[Order]:
        return await self.store.list_orders(self.settings.store_id)

    async def find(self, order_id: str) -> Maybe[Order]:
        return Maybe.of(await self.store.get_order(order_id))

    async def update_status(self, order_id: str, status: OrderStatus) -> Either[Failure, Order]:
        """pending -> paid -> delivered, pending/paid -> cancelled"""
        status = OrderStatus(status)
        found = await self.find(order_id)
        if found.is_none():
            return Either.fail(FailureKind.NOT_FOUND, f"Pedido {order_id} não encontrado.")

        order = found.value
        if status not in ALLOWED_TRANSITIONS.get(order.status, ()):
            return Either.fail(
                FailureKind.INVALID_TRANSITION,
                f"Não é possível mudar o pedido de {order.status.value} para {status.value}.",
            )

        updated = replace(order, status=status)
        await self.store.update_order(updated)
        logger.info("Order %s: %s -> %s", order_id, order.status.value, status.value)
        return Either.right(updated)

    async def confirm_payment(self, order_id: str) -> Either[Failure, Order]:
        return await self.update_status(order_id, OrderStatus.PAID)

    async def amend_customer_contact(
        self, order_id: str, email: Optional[str] = None, phone: Optional[str] = None
    ) -> Either[Failure, Order]:
        """Контакты покупателя, пришедшие после оформления; позиции и сумма не трогаются"""
        found = await self.find(order_id)
        if found.is_none():
            return Either.fail(FailureKind.NOT_FOUND, f"Pedido {order_id} não encontrado.")

        order = found.value
        updated = replace(
            order,
            customer_email=email if email is not None else order.customer_email,
            customer_phone=phone if phone is not None else order.customer_phone,
        )
        await self.store.update_order(updated)
        return Either.right(updated)

    async def metrics(self) -> dict:
        """Количество заказов, выручка (paid + delivered), ожидающие оплаты"""
        orders = await self.list_orders()
        revenue_orders = tuple(
            filter(lambda o: o.status in (OrderStatus.PAID, OrderStatus.DELIVERED), orders)
        )
        return {
            "total_orders": len(orders),
            "total_revenue": reduce(lambda acc, o: acc + o.total, revenue_orders, Decimal("0.00")),
            "pending_orders": sum(1 for o in orders if o.status is OrderStatus.PENDING),
        }
