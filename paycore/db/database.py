# paycore/db/database.py
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Базовый класс для моделей
Base = declarative_base()


def make_engine(database_url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo, **kwargs)


def make_session_factory(engine: AsyncEngine):
    # Асинхронная фабрика сессий
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        # Создание всех таблиц
        await conn.run_sync(Base.metadata.create_all)
