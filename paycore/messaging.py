import re
from decimal import Decimal
from typing import Iterable, Optional
from urllib.parse import quote

from .domain import CartTotals, OrderItem, PaymentMethod, to_money

WHATSAPP_BASE_URL = "https://wa.me"
SEPARATOR = "----------------"

# символы, которые encodeURIComponent оставляет как есть
_URI_SAFE = "-_.!~*'()"

PAYMENT_LABELS = {
    PaymentMethod.PIX: "PIX",
    PaymentMethod.CREDIT: "Cartão de Crédito",
    PaymentMethod.DEBIT: "Cartão de Débito",
}


def format_brl(value) -> str:
    """Decimal("1234.5") -> "R$ 1.234,50" """
    amount = to_money(value)
    text = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-R$ {text}" if amount < 0 else f"R$ {text}"


def message_money(value) -> str:
    """Сумма в тексте заказа: "R$ 1234.50", как в сообщениях магазина"""
    amount = to_money(value)
    return f"-R$ {abs(amount):.2f}" if amount < 0 else f"R$ {amount:.2f}"


def order_summary(
    display_id: str,
    items: Iterable[OrderItem],
    totals: CartTotals,
    payment_method: PaymentMethod,
    customer_name: str,
    notes: str = "",
    coupon_code: Optional[str] = None,
    pix_percent: Decimal = Decimal("5"),
) -> str:
    """Текст заказа для отправки продавцу в WhatsApp"""
    lines = [f"*Pedido #{display_id}*", SEPARATOR]
    for item in items:
        lines.append(
            f"{item.quantity}x {item.name} - {message_money(item.price * item.quantity)}"
        )
    lines.append(SEPARATOR)

    if totals.coupon_discount > 0 or totals.payment_discount > 0:
        lines.append(f"Subtotal: {message_money(totals.subtotal)}")
    if totals.coupon_discount > 0:
        label = f"Cupom {coupon_code.upper()}" if coupon_code else "Cupom"
        lines.append(f"{label}: -{message_money(totals.coupon_discount)}")
    if totals.payment_discount > 0:
        lines.append(
            f"Desconto Pix ({Decimal(str(pix_percent)).normalize():f}%): -{message_money(totals.payment_discount)}"
        )

    lines.append(f"*Total Final: {message_money(totals.total)}*")
    lines.append(f"Forma de Pagamento: {PAYMENT_LABELS[PaymentMethod(payment_method)]}")
    lines.append(f"Cliente: {customer_name}")
    if notes:
        lines.append(f"Obs: {notes}")
    return "\n".join(lines)


def whatsapp_link(phone: str, message: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    return f"{WHATSAPP_BASE_URL}/{digits}?text={quote(message, safe=_URI_SAFE)}"
