"""
Оформление заказа: корзина -> проверка остатков -> списание -> заказ.

Шаги выполняются строго по порядку, каждый вызов хранилища ожидается
последовательно. Ошибки валидации возвращаются как Left(Failure),
ошибки сети/хранилища ловятся здесь и превращаются в backend_error.
"""

import enum
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .domain import (
    Cart,
    CartTotals,
    CheckoutReceipt,
    Coupon,
    Order,
    OrderStatus,
    PaymentMethod,
    StoreSettings,
)
from .errors import PayloadError
from .ftypes import Either, Failure, FailureKind
from .messaging import order_summary, whatsapp_link
from .pix import PixPayloadGenerator
from .store import ShopStore
from .transforms import (
    cart_subtotal,
    compute_totals,
    coupon_discount,
    order_items,
    validate_coupon,
    validate_stock,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Não foi possível finalizar o pedido. Tente novamente."


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def short_id() -> str:
    return uuid.uuid4().hex[:8]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def display_order_id(order_number: Optional[int], fallback: str) -> str:
    """Порядковый номер из хранилища (0007) или короткий id"""
    return str(order_number).zfill(4) if order_number is not None else fallback


class CheckoutOrchestrator:
    """Одна попытка оформления = один вызов checkout()"""

    def __init__(
        self,
        store: ShopStore,
        settings: StoreSettings,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = short_id,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.id_factory = id_factory
        self.pix = PixPayloadGenerator(settings)
        self.state = CheckoutState.IDLE

    def _fail(self, failure: Failure) -> Either[Failure, CheckoutReceipt]:
        self.state = CheckoutState.FAILED
        logger.info("Checkout failed: %s (%s)", failure.message, failure.kind.value)
        return Either.left(failure)

    async def checkout(
        self,
        cart: Cart,
        customer_name: str,
        notes: str = "",
        payment_method: PaymentMethod = PaymentMethod.PIX,
        coupon: Optional[Coupon] = None,
    ) -> Either[Failure, CheckoutReceipt]:
        payment_method = PaymentMethod(payment_method)
        self.state = CheckoutState.VALIDATING

        if not cart.items:
            return self._fail(Failure(FailureKind.EMPTY_CART, "Seu carrinho está vazio."))

        try:
            return await self._run(cart, customer_name, notes, payment_method, coupon)
        except Exception:
            # запросы, уже выполненные до ошибки, не откатываются
            logger.exception("Checkout aborted by backend error")
            return self._fail(Failure(FailureKind.BACKEND_ERROR, GENERIC_FAILURE))

    async def _run(
        self,
        cart: Cart,
        customer_name: str,
        notes: str,
        payment_method: PaymentMethod,
        coupon: Optional[Coupon],
    ) -> Either[Failure, CheckoutReceipt]:
        # 1. Актуальные остатки, а не снимок из корзины
        live_products = await self.store.list_products(self.settings.store_id)
        validated = validate_stock(cart, live_products)
        if validated.is_left:
            return self._fail(validated.failure)

        subtotal = cart_subtotal(cart)

        # 2. Купон перепроверяется по актуальным данным магазина
        if coupon is not None:
            coupons = await self.store.list_coupons(self.settings.store_id)
            checked = validate_coupon(coupons, coupon.code, subtotal, now=self.clock())
            if checked.is_left:
                return self._fail(checked.failure)
            coupon = checked.value

        # 3. Итоги
        totals = compute_totals(
            subtotal,
            coupon_discount(coupon, subtotal),
            payment_method,
            self.settings.pix_discount_percent,
        )

        # 4. Списание остатков и использование купона
        self.state = CheckoutState.COMMITTING
        committed = await self._commit_stock(cart)
        if committed.is_left:
            return self._fail(committed.failure)

        if coupon is not None:
            if not await self.store.increment_coupon_usage(coupon.id):
                await self._restore_stock(committed.value)
                return self._fail(
                    Failure(
                        FailureKind.COUPON_LIMIT_REACHED,
                        "Este cupom atingiu o limite de uso.",
                    )
                )

        # 5. Заказ
        order = self._build_order(cart, customer_name, notes, payment_method, totals)
        created = await self.store.create_order(order, self.settings.store_id)
        display_id = display_order_id(created.order_number, order.id)

        # 6. Сообщение продавцу
        message = order_summary(
            display_id,
            order.items,
            totals,
            payment_method,
            customer_name,
            notes,
            coupon_code=coupon.code if coupon else None,
            pix_percent=self.settings.pix_discount_percent,
        )
        url = whatsapp_link(self.settings.whatsapp_number, message)

        pix_payload = None
        if payment_method is PaymentMethod.PIX and totals.total > 0:
            try:
                pix_payload = self.pix.for_amount(totals.total)
            except PayloadError:
                # заказ уже создан, покупатель оплатит по ссылке WhatsApp
                logger.exception("Cannot build Pix payload for order %s", display_id)

        self.state = CheckoutState.SUCCEEDED
        logger.info("Order %s created, total %s", display_id, totals.total)
        return Either.right(
            CheckoutReceipt(
                order=replace(order, order_number=created.order_number),
                display_id=display_id,
                whatsapp_url=url,
                totals=totals,
                pix_payload=pix_payload,
            )
        )

    async def _commit_stock(self, cart: Cart) -> Either[Failure, List[Tuple[str, int]]]:
        """
        Последовательное условное списание по каждой строке.
        Если кто-то успел купить раньше - уже списанное возвращается на склад.
        """
        done: List[Tuple[str, int]] = []
        for item in cart.items:
            if not await self.store.decrement_stock(item.product_id, item.quantity):
                await self._restore_stock(done)
                product = await self.store.get_product(item.product_id)
                available = product.stock if product else 0
                return Either.fail(
                    FailureKind.INSUFFICIENT_STOCK,
                    f"Estoque insuficiente para {item.name}. Disponível: {available}",
                )
            done.append((item.product_id, item.quantity))
        return Either.right(done)

    async def _restore_stock(self, lines: List[Tuple[str, int]]) -> None:
        for product_id, qty in lines:
            await self.store.restock(product_id, qty)
        if lines:
            logger.warning("Restored stock for %d lines after a lost race", len(lines))

    def _build_order(
        self,
        cart: Cart,
        customer_name: str,
        notes: str,
        payment_method: PaymentMethod,
        totals: CartTotals,
    ) -> Order:
        return Order(
            id=self.id_factory(),
            customer_name=customer_name,
            items=order_items(cart),
            total=totals.total,
            status=OrderStatus.PENDING,
            payment_method=payment_method,
            created_at=self.clock().isoformat(),
            notes=f"{notes or ''} | Pagamento: {payment_method.value}",
            store_id=self.settings.store_id,
        )
