"""Fixed-point money value type with currency-aware rounding.

Amounts are ``Decimal`` quantized to the currency's minor units as reported by
babel (2 for MVR/USD/EUR, 0 for JPY, 3 for KWD, ...) using ROUND_HALF_UP.
Arithmetic between two different currencies is rejected; there is no implicit
conversion.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision

from src.services.errors import CurrencyMismatch


def _normalize_code(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Currency must be a 3-letter code, got {currency!r}")
    return code


def quantize_amount(amount: Decimal | int | str, currency: str) -> Decimal:
    """Round an amount to the minor units of ``currency`` (half-up)."""
    try:
        value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    except InvalidOperation as e:
        raise ValueError(f"Invalid money amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid money amount: {amount!r}")
    exponent = Decimal(1).scaleb(-get_currency_precision(currency))
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """Immutable amount + ISO 4217 currency code."""

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        code = _normalize_code(self.currency)
        object.__setattr__(self, "currency", code)
        object.__setattr__(self, "amount", quantize_amount(self.amount, code))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal(0), currency)

    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Decimal | int) -> "Money":
        if isinstance(factor, (Money, float)):
            raise TypeError("Money can only be multiplied by int or Decimal")
        return Money(self.amount * Decimal(factor), self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    def format(self, locale: str = "en_US") -> str:
        """Render with babel, e.g. ``MVR 5,000.00`` for en_US."""
        try:
            return format_currency(self.amount, self.currency, locale=locale)
        except (UnknownLocaleError, ValueError):
            return f"{self.amount} {self.currency}"

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


__all__ = ["Money", "quantize_amount"]
