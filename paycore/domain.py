import enum
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple


CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Приводит int/float/str/Decimal к Decimal с двумя знаками"""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    CREDIT = "credit"
    DEBIT = "debit"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock: int
    category: str = ""
    promotional_price: Optional[Decimal] = None
    active: bool = True

    @property
    def unit_price(self) -> Decimal:
        # промо-цена 0 считается отсутствующей
        return self.promotional_price or self.price


@dataclass(frozen=True)
class CartItem:
    """Строка корзины: копия товара на момент добавления + количество"""

    product_id: str
    name: str
    price: Decimal
    quantity: int
    category: str = ""
    promotional_price: Optional[Decimal] = None

    @property
    def unit_price(self) -> Decimal:
        return self.promotional_price or self.price

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class Cart:
    items: Tuple[CartItem, ...] = ()


@dataclass(frozen=True)
class Coupon:
    id: str
    code: str
    discount_type: DiscountType
    value: Decimal
    min_spend: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    expires_at: Optional[str] = None  # ISO-8601
    active: bool = True

    @property
    def has_limit(self) -> bool:
        # лимит 0 в админке означает «без ограничений»
        return bool(self.usage_limit)


@dataclass(frozen=True)
class OrderItem:
    """Снимок позиции заказа по цене покупки"""

    product_id: str
    name: str
    price: Decimal
    quantity: int


@dataclass(frozen=True)
class Order:
    id: str
    customer_name: str
    items: Tuple[OrderItem, ...]
    total: Decimal
    status: OrderStatus
    payment_method: PaymentMethod
    created_at: str
    notes: str = ""
    order_number: Optional[int] = None
    store_id: str = ""
    customer_email: str = ""
    customer_phone: str = ""


@dataclass(frozen=True)
class CreatedOrder:
    id: str
    order_number: Optional[int] = None


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    coupon_discount: Decimal
    payment_discount: Decimal
    total: Decimal


@dataclass(frozen=True)
class StoreSettings:
    store_id: str
    store_name: str
    pix_key: str
    merchant_name: str
    merchant_city: str
    whatsapp_number: str
    pix_discount_percent: Decimal = Decimal("5")
    database_url: str = ""


@dataclass(frozen=True)
class CheckoutReceipt:
    order: Order
    display_id: str
    whatsapp_url: str
    totals: CartTotals
    pix_payload: Optional[str] = None
