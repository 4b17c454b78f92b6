# paycore/ftypes.py
# Maybe и Either для ветвления без исключений + Failure для ошибок валидации.
# Вызывающий код проверяет is_left / is_right, исключения сюда не попадают.

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
L = TypeVar("L")
R = TypeVar("R")


class FailureKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    COUPON_INVALID = "coupon_invalid"
    COUPON_MIN_SPEND = "coupon_min_spend"
    COUPON_LIMIT_REACHED = "coupon_limit_reached"
    COUPON_EXPIRED = "coupon_expired"
    EMPTY_CART = "empty_cart"
    INVALID_TRANSITION = "invalid_transition"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True)
class Failure:
    """Ошибка для покупателя: тип + короткое сообщение (pt-BR)"""

    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Maybe(Generic[T]):
    """
    Maybe-обёртка для поиска (товар по id, купон по коду).
    Maybe.some(value) / Maybe.nothing().
    """

    value: Optional[T]

    @staticmethod
    def some(value: T) -> "Maybe[T]":
        return Maybe(value)

    @staticmethod
    def nothing() -> "Maybe[None]":
        return Maybe(None)

    @staticmethod
    def of(value: Optional[T]) -> "Maybe[T]":
        return Maybe(value)

    def is_some(self) -> bool:
        return self.value is not None

    def is_none(self) -> bool:
        return self.value is None

    def map(self, fn: Callable[[T], U]) -> "Maybe[U]":
        return Maybe.some(fn(self.value)) if self.is_some() else Maybe.nothing()

    def to_either(self, failure: Failure) -> "Either[Failure, T]":
        """Nothing превращается в Left(failure)"""
        return Either.right(self.value) if self.is_some() else Either.left(failure)

    def get_or_else(self, default: U) -> T | U:
        return self.value if self.is_some() else default

    def __repr__(self) -> str:
        return f"Some({self.value})" if self.is_some() else "Nothing"


@dataclass(frozen=True)
class Either(Generic[L, R]):
    """
    Результат операции: Left(Failure) при ошибке, Right(value) при успехе.

    Фабрики: Either.left(val), Either.right(val), Either.fail(kind, message)
    Методы: map, bind, get_or_else, failure
    """

    is_left: bool
    value: Union[L, R]

    @staticmethod
    def left(value: L) -> "Either[L, R]":
        return Either(True, value)

    @staticmethod
    def right(value: R) -> "Either[L, R]":
        return Either(False, value)

    @staticmethod
    def fail(kind: FailureKind, message: str) -> "Either[Failure, R]":
        return Either(True, Failure(kind, message))

    @property
    def is_right(self) -> bool:
        return not self.is_left

    @property
    def failure(self) -> Optional[L]:
        return self.value if self.is_left else None

    def map(self, fn: Callable[[R], U]) -> "Either[L, U]":
        return Either.right(fn(self.value)) if not self.is_left else self  # type: ignore[return-value]

    def bind(self, fn: Callable[[R], "Either[L, U]"]) -> "Either[L, U]":
        return fn(self.value) if not self.is_left else self  # type: ignore[return-value]

    def get_or_else(self, default: U) -> R | U:
        return self.value if not self.is_left else default  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"Left({self.value})" if self.is_left else f"Right({self.value})"
