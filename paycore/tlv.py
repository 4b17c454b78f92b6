from typing import Tuple

from .errors import PayloadError

MAX_VALUE_LENGTH = 99


def field(tag: str, value: str) -> str:
    """
    Поле TLV: тег (2 цифры) + длина (2 цифры, с ведущим нулём) + значение.
    Вложенный блок = field(внешний_тег, field(...) + field(...)).
    Значения длиннее 99 символов не влезают в длину из двух цифр - отказ.
    """
    if len(tag) != 2 or not tag.isdigit():
        raise PayloadError(f"TLV tag must be two digits, got {tag!r}")
    if len(value) > MAX_VALUE_LENGTH:
        raise PayloadError(
            f"TLV value for tag {tag} is {len(value)} chars, max {MAX_VALUE_LENGTH}"
        )
    return f"{tag}{len(value):02d}{value}"


def parse(payload: str) -> Tuple[Tuple[str, str], ...]:
    """Разбирает плоскую TLV-строку в кортеж пар (тег, значение)"""
    fields = []
    pos = 0
    while pos < len(payload):
        header = payload[pos : pos + 4]
        if len(header) < 4 or not header.isdigit():
            raise PayloadError(f"malformed TLV header at offset {pos}: {header!r}")
        tag, length = header[:2], int(header[2:])
        value = payload[pos + 4 : pos + 4 + length]
        if len(value) != length:
            raise PayloadError(f"TLV value for tag {tag} is truncated")
        fields.append((tag, value))
        pos += 4 + length
    return tuple(fields)


def parse_nested(payload: str, templates: Tuple[str, ...]) -> dict:
    """
    Разбирает payload в словарь; поля-шаблоны раскрываются
    как "26.00", "26.01", "62.05" и т.д.
    """
    result = {}
    for tag, value in parse(payload):
        if tag in templates:
            for inner_tag, inner_value in parse(value):
                result[f"{tag}.{inner_tag}"] = inner_value
        else:
            result[tag] = value
    return result
