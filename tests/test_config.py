import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

from paycore.config import DEFAULT_STORE_ID, load_settings


def test_defaults_when_env_is_empty():
    settings = load_settings({})
    assert settings.store_id == DEFAULT_STORE_ID
    assert settings.merchant_city == "SAO LUIS"
    assert settings.pix_discount_percent == Decimal("5")
    assert settings.database_url == ""


def test_env_overrides():
    settings = load_settings(
        {
            "STORE_ID": "loja-2",
            "PIX_KEY": "loja@example.com",
            "PIX_DISCOUNT_PERCENT": "7.5",
            "DATABASE_URL": "sqlite+aiosqlite:///shop.db",
            "MERCHANT_CITY": "",
        }
    )
    assert settings.store_id == "loja-2"
    assert settings.pix_key == "loja@example.com"
    assert settings.pix_discount_percent == Decimal("7.5")
    assert settings.database_url == "sqlite+aiosqlite:///shop.db"
    # пустая переменная = значение по умолчанию
    assert settings.merchant_city == "SAO LUIS"


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("STORE_NAME", "Loja Teste")
    assert load_settings().store_name == "Loja Teste"
