import logging
import os
from decimal import Decimal
from typing import Mapping, Optional

from dotenv import load_dotenv

from .domain import StoreSettings

logger = logging.getLogger(__name__)

DEFAULT_STORE_ID = "00000000-0000-0000-0000-000000000001"

DEFAULTS = {
    "STORE_ID": DEFAULT_STORE_ID,
    "STORE_NAME": "Lojinha das Graças",
    "PIX_KEY": "5598984095956",
    "MERCHANT_NAME": "LOJINHA DAS GRACAS",
    "MERCHANT_CITY": "SAO LUIS",
    "WHATSAPP_NUMBER": "5598984095956",
    "PIX_DISCOUNT_PERCENT": "5",
    "DATABASE_URL": "",
}


def load_settings(env: Optional[Mapping[str, str]] = None) -> StoreSettings:
    """
    Настройки магазина из окружения (.env подхватывается python-dotenv).
    env можно передать явно - тогда .env и os.environ не читаются.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    def get(name: str) -> str:
        return env.get(name) or DEFAULTS[name]

    settings = StoreSettings(
        store_id=get("STORE_ID"),
        store_name=get("STORE_NAME"),
        pix_key=get("PIX_KEY"),
        merchant_name=get("MERCHANT_NAME"),
        merchant_city=get("MERCHANT_CITY"),
        whatsapp_number=get("WHATSAPP_NUMBER"),
        pix_discount_percent=Decimal(get("PIX_DISCOUNT_PERCENT")),
        database_url=get("DATABASE_URL"),
    )
    logger.debug("Loaded settings for store %s", settings.store_id)
    return settings
