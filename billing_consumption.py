"""
Consumption and Prices
======================

Hourly time-of-use billing: every reading belongs to one of the 168 hours of
the week, and the provider publishes one price per hour.

Two consumption schemes share one interface:

- IntegerScheme: integer units and prices, signed 32-bit on the wire.
  Committed values are the units themselves.
- FloatingScheme: float units and prices, IEEE-754 double on the wire.
  Committed values are fixed-point integers (FIXED_POINT_SCALE per unit),
  since commitments only add integers. Values must be whole multiples of
  1 / FIXED_POINT_SCALE.

Serialization is explicit big-endian struct packing with length checks.
"""

import math
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from billing_errors import InvalidConsumptionError, InvalidPriceError, ProtocolError

HOURS_PER_WEEK = 24 * 7

Number = Union[int, float]


class ConsumptionScheme(ABC):
    """
    Numeric domain of one protocol instance.

    Both consumption units and prices use the same scheme, so that a price
    times a reading stays in one domain.
    """

    name: str
    price_width: int
    _struct: struct.Struct

    @abstractmethod
    def is_valid(self, value) -> bool:
        """True if value is a legal, non-negative amount in this scheme."""

    @abstractmethod
    def to_exponent(self, value: Number) -> int:
        """Map a valid amount to the non-negative integer that is committed."""

    @abstractmethod
    def bill_value(self, bill: int) -> Number:
        """Convert a bill in exponent units (Σ units·price) to this scheme's unit."""

    @abstractmethod
    def parse(self, text: str) -> Number:
        """Parse a decimal string, as found on the wire or typed in a shell."""

    def format(self, value: Number) -> str:
        """Decimal string that parse() maps back to value."""
        return repr(value)

    def zero(self) -> Number:
        return self.parse("0")

    def to_bytes(self, value: Number) -> bytes:
        try:
            return self._struct.pack(value)
        except struct.error as e:
            raise InvalidPriceError(f"Cannot encode {value!r} as {self.name}: {e}") from e

    def from_bytes(self, data: bytes) -> Number:
        if len(data) != self.price_width:
            raise ProtocolError(
                f"Expected {self.price_width} bytes for a {self.name} value, got {len(data)}"
            )
        return self._struct.unpack(data)[0]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class IntegerScheme(ConsumptionScheme):
    """Integer billing: values in [0, 2^31 - 1], big-endian i32 on the wire."""

    name = "integer"
    price_width = 4
    _struct = struct.Struct(">i")
    MAX_VALUE = 2 ** 31 - 1

    def is_valid(self, value) -> bool:
        return (isinstance(value, int) and not isinstance(value, bool)
                and 0 <= value <= self.MAX_VALUE)

    def to_exponent(self, value: int) -> int:
        return value

    def bill_value(self, bill: int) -> int:
        return bill

    def parse(self, text: str) -> int:
        try:
            return int(text, 10)
        except ValueError as e:
            raise ProtocolError(f"Not an integer: {text!r}") from e

    def format(self, value: int) -> str:
        return str(value)


class FloatingScheme(ConsumptionScheme):
    """
    Floating point billing: multiples of 0.001 in [0, MAX_VALUE], big-endian
    f64 on the wire.
    """

    name = "floating"
    price_width = 8
    _struct = struct.Struct(">d")
    FIXED_POINT_SCALE = 1000
    # Same committed range as IntegerScheme
    MAX_VALUE = IntegerScheme.MAX_VALUE / FIXED_POINT_SCALE

    def is_valid(self, value) -> bool:
        if not (isinstance(value, (int, float)) and not isinstance(value, bool)
                and math.isfinite(value) and 0 <= value <= self.MAX_VALUE):
            return False
        # Finer than 1 / FIXED_POINT_SCALE would be billed as something else
        scaled = value * self.FIXED_POINT_SCALE
        return math.isclose(scaled, round(scaled), rel_tol=1e-9, abs_tol=1e-6)

    def to_exponent(self, value: float) -> int:
        return round(value * self.FIXED_POINT_SCALE)

    def bill_value(self, bill: int) -> float:
        return bill / (self.FIXED_POINT_SCALE * self.FIXED_POINT_SCALE)

    def parse(self, text: str) -> float:
        try:
            return float(text)
        except ValueError as e:
            raise ProtocolError(f"Not a number: {text!r}") from e


INTEGER = IntegerScheme()
FLOATING = FloatingScheme()

SCHEMES = {scheme.name: scheme for scheme in (INTEGER, FLOATING)}


def get_scheme(name: str) -> ConsumptionScheme:
    """Look up a scheme by name ('integer' or 'floating')."""
    try:
        return SCHEMES[name]
    except KeyError:
        raise ValueError(f"Unknown consumption scheme: {name!r}") from None


def is_valid_hour(hour_of_week) -> bool:
    return (isinstance(hour_of_week, int) and not isinstance(hour_of_week, bool)
            and 0 <= hour_of_week < HOURS_PER_WEEK)


@dataclass(frozen=True)
class Consumption:
    """
    One hour of consumption.

    Attributes
    ----------
    hour_of_week : int
        The hour in the week: 7am on a Tuesday is 24 + 7
    units_consumed : int or float
        Units of the utility consumed in that hour
    scheme : ConsumptionScheme
        Numeric domain of units_consumed
    """
    hour_of_week: int
    units_consumed: Number
    scheme: ConsumptionScheme = INTEGER

    def __post_init__(self):
        if not self.is_valid():
            raise InvalidConsumptionError(
                f"Invalid consumption: hour {self.hour_of_week!r}, "
                f"units {self.units_consumed!r} ({self.scheme.name})"
            )

    def is_valid(self) -> bool:
        return is_valid_hour(self.hour_of_week) and self.scheme.is_valid(self.units_consumed)


class PriceTable:
    """
    Price coefficient for each hour of the week.

    Prices are validated on every write, so a table never holds a negative
    or unencodable price.
    """

    def __init__(self, prices: Iterable[Number], scheme: ConsumptionScheme = INTEGER):
        prices = list(prices)
        if len(prices) != HOURS_PER_WEEK:
            raise InvalidPriceError(f"Expected {HOURS_PER_WEEK} prices, got {len(prices)}")
        for hour, price in enumerate(prices):
            self._check(hour, price, scheme)
        self.scheme = scheme
        self._prices: List[Number] = prices

    @staticmethod
    def _check(hour: int, price, scheme: ConsumptionScheme):
        if not scheme.is_valid(price):
            raise InvalidPriceError(f"Invalid {scheme.name} price for hour {hour}: {price!r}")

    @classmethod
    def null(cls, scheme: ConsumptionScheme = INTEGER) -> "PriceTable":
        """A table with every price zero."""
        return cls([scheme.zero()] * HOURS_PER_WEEK, scheme)

    @classmethod
    def flat(cls, price: Number, scheme: ConsumptionScheme = INTEGER) -> "PriceTable":
        """A table with the same price every hour."""
        return cls([price] * HOURS_PER_WEEK, scheme)

    def __getitem__(self, hour_of_week: int) -> Number:
        return self.get_price(hour_of_week)

    def __len__(self) -> int:
        return HOURS_PER_WEEK

    def __iter__(self):
        return iter(self._prices)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PriceTable):
            return NotImplemented
        return self.scheme.name == other.scheme.name and self._prices == other._prices

    def __repr__(self) -> str:
        return f"PriceTable({self.scheme.name}, {self._prices[:4]}...)"

    def get_price(self, hour_of_week: int) -> Number:
        if not is_valid_hour(hour_of_week):
            raise InvalidConsumptionError(f"Hour of week out of range: {hour_of_week!r}")
        return self._prices[hour_of_week]

    def set_price(self, hour_of_week: int, price: Number) -> None:
        if not is_valid_hour(hour_of_week):
            raise InvalidConsumptionError(f"Hour of week out of range: {hour_of_week!r}")
        self._check(hour_of_week, price, self.scheme)
        self._prices[hour_of_week] = price

    def copy(self) -> "PriceTable":
        return PriceTable(self._prices, self.scheme)

    def exponent(self, hour_of_week: int) -> int:
        """The committed-domain weight of one hour's price."""
        return self.scheme.to_exponent(self.get_price(hour_of_week))

    def to_bytes(self) -> bytes:
        return b"".join(self.scheme.to_bytes(price) for price in self._prices)

    @classmethod
    def from_bytes(cls, data: bytes, scheme: ConsumptionScheme = INTEGER) -> "PriceTable":
        """
        Decode HOURS_PER_WEEK prices of the given scheme.

        Raises
        ------
        ProtocolError
            If data has the wrong length
        InvalidPriceError
            If any decoded price is invalid (e.g. negative)
        """
        width = scheme.price_width
        expected = HOURS_PER_WEEK * width
        if len(data) != expected:
            raise ProtocolError(f"Expected {expected} bytes of prices, got {len(data)}")
        prices = [scheme.from_bytes(data[i:i + width]) for i in range(0, expected, width)]
        return cls(prices, scheme)

    @classmethod
    def byte_length(cls, scheme: Optional[ConsumptionScheme] = None) -> int:
        return HOURS_PER_WEEK * (scheme or INTEGER).price_width
