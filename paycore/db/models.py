# paycore/db/models.py
from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .database import Base


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    store_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    promotional_price = Column(Numeric(10, 2), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    category = Column(String, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True)


class CouponRow(Base):
    __tablename__ = "coupons"

    id = Column(String, primary_key=True)
    store_id = Column(String, index=True, nullable=False)
    code = Column(String, nullable=False)
    discount_type = Column(String, nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    min_spend = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)


class OrderRow(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("store_id", "order_number", name="uq_orders_store_number"),)

    id = Column(String, primary_key=True)
    store_id = Column(String, index=True, nullable=False)
    order_number = Column(Integer, nullable=True)
    customer_name = Column(String, nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    payment_method = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
    notes = Column(Text, nullable=False, default="")
    customer_email = Column(String, nullable=False, default="")
    customer_phone = Column(String, nullable=False, default="")

    items = relationship("OrderItemRow", back_populates="order", order_by="OrderItemRow.id")


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    product_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("OrderRow", back_populates="items")
