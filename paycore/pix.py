"""
Статический Pix-код (BR Code, формат EMV QRCPS).

Payload - детерминированная строка из вложенных TLV-полей с CRC16 в конце.
Одинаковые входные данные всегда дают одинаковую строку, поэтому сборка
кэшируется через lru_cache.
"""

import enum
import re
import unicodedata
from decimal import InvalidOperation
from functools import lru_cache

from .crc import append_crc, verify_crc
from .domain import Order, StoreSettings, to_money
from .errors import PayloadError
from .tlv import field, parse_nested

PIX_GUI = "br.gov.bcb.pix"
DEFAULT_MERCHANT_NAME = "LOJINHA DAS GRACAS"
DEFAULT_MERCHANT_CITY = "SAO LUIS"
STATIC_TXID = "***"

MAX_NAME_LENGTH = 25
MAX_CITY_LENGTH = 15

_KEY_PUNCTUATION = re.compile(r"[.\-/()]")
_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"[0-9]+")
_NOT_ALNUM = re.compile(r"[^A-Za-z0-9 ]")


class KeyType(str, enum.Enum):
    EMAIL = "email"
    PHONE = "phone"
    CNPJ = "cnpj"
    RANDOM = "random"
    OTHER = "other"


def classify_key(raw_key: str) -> KeyType:
    key = _WHITESPACE.sub("", raw_key or "")
    if "@" in key:
        return KeyType.EMAIL

    digits = _KEY_PUNCTUATION.sub("", key)
    if _DIGITS.fullmatch(digits):
        if len(digits) in (10, 11):
            return KeyType.PHONE
        if len(digits) == 14:
            return KeyType.CNPJ

    if len(key) > 20:
        return KeyType.RANDOM
    return KeyType.OTHER


def normalize_key(raw_key: str) -> str:
    """
    Приводит ключ Pix к виду, который ожидают банковские приложения:
      e-mail          -> нижний регистр
      телефон (10/11) -> +55 и цифры
      CNPJ (14 цифр)  -> только цифры
      случайный ключ  -> как есть, без пробелов
      прочее          -> без символов . - / ( )
    """
    key = _WHITESPACE.sub("", raw_key or "")
    key_type = classify_key(key)

    if key_type is KeyType.EMAIL:
        return key.lower()
    if key_type is KeyType.PHONE:
        return "+55" + _KEY_PUNCTUATION.sub("", key)
    if key_type is KeyType.CNPJ:
        return _KEY_PUNCTUATION.sub("", key)
    if key_type is KeyType.RANDOM:
        return key
    return _KEY_PUNCTUATION.sub("", key)


def normalize_text(text: str) -> str:
    """Транслитерация для полей 59/60: без диакритики, только [A-Z0-9 ]"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.replace("ç", "C").replace("Ç", "C")
    return _NOT_ALNUM.sub("", stripped).upper().strip()


def format_amount(amount) -> str:
    """10 -> "10.00", 10.5 -> "10.50"; без разделителя тысяч и валюты"""
    try:
        value = to_money(amount)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise PayloadError(f"invalid amount {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise PayloadError(f"amount must be positive, got {amount!r}")
    return f"{value:.2f}"


@lru_cache(maxsize=256)
def _build(key: str, amount: str, name: str, city: str) -> str:
    merchant_account = field("26", field("00", PIX_GUI) + field("01", key))
    additional_data = field("62", field("05", STATIC_TXID))

    body = "".join(
        (
            field("00", "01"),  # Payload Format Indicator
            merchant_account,
            field("52", "0000"),  # Merchant Category Code
            field("53", "986"),  # BRL
            field("54", amount),
            field("58", "BR"),
            field("59", name),
            field("60", city),
            additional_data,
        )
    )
    return append_crc(body)


def build_payload(
    key: str,
    amount,
    merchant_name: str = DEFAULT_MERCHANT_NAME,
    merchant_city: str = DEFAULT_MERCHANT_CITY,
) -> str:
    """
    Собирает полный Pix "copia e cola" для суммы amount.
    Чистая функция: повторный вызов с теми же аргументами вернёт ту же строку.
    """
    return _build(
        normalize_key(key),
        format_amount(amount),
        normalize_text(merchant_name)[:MAX_NAME_LENGTH],
        normalize_text(merchant_city)[:MAX_CITY_LENGTH],
    )


def decode_payload(payload: str) -> dict:
    """Разбирает Pix-код обратно в словарь тег -> значение (с проверкой CRC)"""
    if not verify_crc(payload):
        raise PayloadError("Pix payload checksum mismatch")
    return parse_nested(payload, templates=("26", "62"))


class PixPayloadGenerator:
    """Генератор Pix-кодов с реквизитами магазина из настроек"""

    def __init__(self, settings: StoreSettings):
        self.key = settings.pix_key
        self.merchant_name = settings.merchant_name or DEFAULT_MERCHANT_NAME
        self.merchant_city = settings.merchant_city or DEFAULT_MERCHANT_CITY

    def for_amount(self, amount) -> str:
        return build_payload(self.key, amount, self.merchant_name, self.merchant_city)

    def for_order(self, order: Order) -> str:
        return self.for_amount(order.total)


def cache_info():
    return _build.cache_info()


def cache_clear() -> None:
    _build.cache_clear()
