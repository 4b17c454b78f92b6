import logging
from typing import Iterable, List, Optional

from .db import functions
from .db import models  # noqa: F401  регистрирует таблицы в Base.metadata
from .db.database import init_db, make_engine, make_session_factory
from .domain import Coupon, CreatedOrder, Order, Product
from .store import ShopStore

logger = logging.getLogger(__name__)


class SqlStore(ShopStore):
    """
    Хранилище на SQLAlchemy (async). Каждый метод - своя сессия и транзакция.
    Списание остатка - условный UPDATE, без чтения перед записью.
    """

    def __init__(self, database_url: str, echo: bool = False, **engine_kwargs):
        self.engine = make_engine(database_url, echo=echo, **engine_kwargs)
        self.SessionLocal = make_session_factory(self.engine)

    async def create_all(self) -> None:
        await init_db(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def seed(
        self, products: Iterable[Product], coupons: Iterable[Coupon], store_id: str
    ) -> None:
        async with self.SessionLocal() as db:
            await functions.add_products(db, list(products), store_id)
            await functions.add_coupons(db, list(coupons), store_id)
        logger.info("Seeded store %s", store_id)

    async def list_products(self, store_id: str) -> List[Product]:
        async with self.SessionLocal() as db:
            return await functions.get_products(db, store_id)

    async def get_product(self, product_id: str) -> Optional[Product]:
        async with self.SessionLocal() as db:
            return await functions.get_product_by_id(db, product_id)

    async def update_stock(self, product_id: str, new_stock: int) -> None:
        async with self.SessionLocal() as db:
            await functions.set_stock(db, product_id, new_stock)

    async def decrement_stock(self, product_id: str, qty: int) -> bool:
        async with self.SessionLocal() as db:
            return await functions.decrement_stock(db, product_id, qty)

    async def restock(self, product_id: str, qty: int) -> None:
        async with self.SessionLocal() as db:
            await functions.increment_stock(db, product_id, qty)

    async def create_order(self, order: Order, store_id: str) -> CreatedOrder:
        async with self.SessionLocal() as db:
            return await functions.create_order(db, order, store_id)

    async def list_orders(self, store_id: str) -> List[Order]:
        async with self.SessionLocal() as db:
            return await functions.get_orders(db, store_id)

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self.SessionLocal() as db:
            return await functions.get_order_by_id(db, order_id)

    async def update_order(self, order: Order) -> None:
        async with self.SessionLocal() as db:
            await functions.update_order_fields(db, order)

    async def list_coupons(self, store_id: str) -> List[Coupon]:
        async with self.SessionLocal() as db:
            return await functions.get_coupons(db, store_id)

    async def update_coupon(self, coupon: Coupon) -> None:
        async with self.SessionLocal() as db:
            await functions.save_coupon(db, coupon)

    async def increment_coupon_usage(self, coupon_id: str) -> bool:
        async with self.SessionLocal() as db:
            return await functions.increment_coupon_usage(db, coupon_id)
