from .errors import PayloadError

CRC_TAG = "6304"  # тег 63, длина 04

_POLY = 0x1021
_INIT = 0xFFFF


def crc16_ccitt(data: str) -> str:
    """
    CRC-16/CCITT-FALSE: полином 0x1021, старт 0xFFFF, старший бит первым.
    Каждый символ строки = один байт, поэтому строка должна быть ASCII.
    Возвращает 4 hex-цифры в верхнем регистре.
    """
    crc = _INIT
    for ch in data:
        code = ord(ch)
        if code > 0x7F:
            raise PayloadError(f"non-ASCII character {ch!r} in payload")
        crc ^= code << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ _POLY) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def append_crc(body: str) -> str:
    """Добавляет тег 6304 и контрольную сумму, посчитанную вместе с тегом"""
    with_tag = body + CRC_TAG
    return with_tag + crc16_ccitt(with_tag)


def verify_crc(payload: str) -> bool:
    if len(payload) < 8 or payload[-8:-4] != CRC_TAG:
        return False
    try:
        return crc16_ccitt(payload[:-4]) == payload[-4:].upper()
    except PayloadError:
        return False
