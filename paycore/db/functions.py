# paycore/db/functions.py
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from ..domain import (
    Coupon,
    CreatedOrder,
    DiscountType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
)
from .models import CouponRow, OrderItemRow, OrderRow, ProductRow

logger = logging.getLogger(__name__)


def _money(value) -> Optional[Decimal]:
    return Decimal(str(value)).quantize(Decimal("0.01")) if value is not None else None


def product_from_row(row: ProductRow) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=_money(row.price),
        stock=row.stock,
        category=row.category,
        promotional_price=_money(row.promotional_price),
        active=row.active,
    )


def coupon_from_row(row: CouponRow) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        discount_type=DiscountType(row.discount_type),
        value=_money(row.value),
        min_spend=_money(row.min_spend),
        usage_limit=row.usage_limit,
        usage_count=row.usage_count,
        expires_at=row.expires_at,
        active=row.active,
    )


def order_from_row(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        customer_name=row.customer_name,
        items=tuple(
            OrderItem(
                product_id=i.product_id,
                name=i.name,
                price=_money(i.price),
                quantity=i.quantity,
            )
            for i in row.items
        ),
        total=_money(row.total),
        status=OrderStatus(row.status),
        payment_method=PaymentMethod(row.payment_method),
        created_at=row.created_at,
        notes=row.notes,
        order_number=row.order_number,
        store_id=row.store_id,
        customer_email=row.customer_email,
        customer_phone=row.customer_phone,
    )


# ============ Товары ============


async def add_products(db: AsyncSession, products: List[Product], store_id: str):
    for p in products:
        db.add(
            ProductRow(
                id=p.id,
                store_id=store_id,
                name=p.name,
                price=p.price,
                promotional_price=p.promotional_price,
                stock=p.stock,
                category=p.category,
                active=p.active,
            )
        )
    await db.commit()


async def get_products(db: AsyncSession, store_id: str) -> List[Product]:
    result = await db.execute(select(ProductRow).filter(ProductRow.store_id == store_id))
    return [product_from_row(row) for row in result.scalars().all()]


async def get_product_by_id(db: AsyncSession, product_id: str) -> Optional[Product]:
    result = await db.execute(select(ProductRow).filter(ProductRow.id == product_id))
    row = result.scalar_one_or_none()
    return product_from_row(row) if row else None


async def set_stock(db: AsyncSession, product_id: str, new_stock: int):
    await db.execute(
        update(ProductRow)
        .where(ProductRow.id == product_id)
        .values(stock=new_stock)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def decrement_stock(db: AsyncSession, product_id: str, qty: int) -> bool:
    # UPDATE products SET stock = stock - :qty WHERE id = :id AND stock >= :qty
    result = await db.execute(
        update(ProductRow)
        .where(ProductRow.id == product_id, ProductRow.stock >= qty)
        .values(stock=ProductRow.stock - qty)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def increment_stock(db: AsyncSession, product_id: str, qty: int):
    await db.execute(
        update(ProductRow)
        .where(ProductRow.id == product_id)
        .values(stock=ProductRow.stock + qty)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


# ============ Заказы ============


ORDER_NUMBER_ATTEMPTS = 3


async def _next_order_number(db: AsyncSession, store_id: str) -> int:
    # Следующий порядковый номер заказа в рамках магазина
    result = await db.execute(
        select(func.max(OrderRow.order_number)).filter(OrderRow.store_id == store_id)
    )
    return (result.scalar() or 0) + 1


def _order_row(order: Order, store_id: str, number: int) -> OrderRow:
    row = OrderRow(
        id=order.id,
        store_id=store_id,
        order_number=number,
        customer_name=order.customer_name,
        total=order.total,
        status=order.status.value,
        payment_method=order.payment_method.value,
        created_at=order.created_at,
        notes=order.notes,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
    )
    row.items = [
        OrderItemRow(
            product_id=i.product_id, name=i.name, price=i.price, quantity=i.quantity
        )
        for i in order.items
    ]
    return row


async def create_order(db: AsyncSession, order: Order, store_id: str) -> CreatedOrder:
    """
    max + 1 может совпасть у двух параллельных вставок: уникальный индекс
    (store_id, order_number) отклонит вторую, и номер берётся заново.
    """
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        number = await _next_order_number(db, store_id)
        db.add(_order_row(order, store_id, number))
        try:
            await db.commit()
            return CreatedOrder(id=order.id, order_number=number)
        except IntegrityError:
            await db.rollback()
            if attempt == ORDER_NUMBER_ATTEMPTS:
                raise
            logger.warning("Order number %s taken in store %s, retrying", number, store_id)


async def get_orders(db: AsyncSession, store_id: str) -> List[Order]:
    result = await db.execute(
        select(OrderRow)
        .where(OrderRow.store_id == store_id)
        .options(selectinload(OrderRow.items))
        .order_by(OrderRow.created_at.desc())
    )
    return [order_from_row(row) for row in result.scalars().all()]


async def get_order_by_id(db: AsyncSession, order_id: str) -> Optional[Order]:
    result = await db.execute(
        select(OrderRow)
        .where(OrderRow.id == order_id)
        .options(selectinload(OrderRow.items))
    )
    row = result.scalar_one_or_none()
    return order_from_row(row) if row else None


async def update_order_fields(db: AsyncSession, order: Order):
    # Меняются только статус и контакты покупателя
    result = await db.execute(
        update(OrderRow)
        .where(OrderRow.id == order.id)
        .values(
            status=order.status.value,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount != 1:
        raise KeyError(order.id)


# ============ Купоны ============


async def add_coupons(db: AsyncSession, coupons: List[Coupon], store_id: str):
    for c in coupons:
        db.add(
            CouponRow(
                id=c.id,
                store_id=store_id,
                code=c.code,
                discount_type=c.discount_type.value,
                value=c.value,
                min_spend=c.min_spend,
                usage_limit=c.usage_limit,
                usage_count=c.usage_count,
                expires_at=c.expires_at,
                active=c.active,
            )
        )
    await db.commit()


async def get_coupons(db: AsyncSession, store_id: str) -> List[Coupon]:
    result = await db.execute(select(CouponRow).filter(CouponRow.store_id == store_id))
    return [coupon_from_row(row) for row in result.scalars().all()]


async def save_coupon(db: AsyncSession, coupon: Coupon):
    await db.execute(
        update(CouponRow)
        .where(CouponRow.id == coupon.id)
        .values(
            code=coupon.code,
            discount_type=coupon.discount_type.value,
            value=coupon.value,
            min_spend=coupon.min_spend,
            usage_limit=coupon.usage_limit,
            usage_count=coupon.usage_count,
            expires_at=coupon.expires_at,
            active=coupon.active,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def increment_coupon_usage(db: AsyncSession, coupon_id: str) -> bool:
    result = await db.execute(
        update(CouponRow)
        .where(
            CouponRow.id == coupon_id,
            CouponRow.active.is_(True),
            or_(
                CouponRow.usage_limit.is_(None),
                CouponRow.usage_limit == 0,
                CouponRow.usage_count < CouponRow.usage_limit,
            ),
        )
        .values(usage_count=CouponRow.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1
