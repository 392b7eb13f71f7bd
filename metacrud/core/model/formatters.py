"""
Type Formatters.

A formatter converts a property's internal value to its wire representation
(a JSON scalar) and back. Formatters may additionally implement
``StorageFormatter`` to control how the value is stored in a column, and
``FilterValueAdapter`` to accept the property in query-string filters.

Built-in formatters:
- ``Date``: ``dd/mm/yyyy`` on the wire, ``yyyy-mm-dd`` in storage
- ``DateTime``: ``dd/mm/yyyy hh:mm:ss`` on the wire, ISO-like in storage
- ``ShortTime``, ``LongTime``, ``PreciseTime``: times with minute, second
  and microsecond precision
- ``Price``: a decimal amount sent as a string with two decimals
- ``Phone``: an international phone number starting with ``+``
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Type

from sqlalchemy.types import Float, String, TypeEngine

from metacrud.core.exceptions import InvalidConfigurationError, RequestParsingError

from .types import ScalarType, matches_scalar

MAX_DESCRIPTION_LENGTH = 40

WIRE_TYPES = (ScalarType.STRING, ScalarType.BOOLEAN, ScalarType.INTEGER, ScalarType.DOUBLE)


class TypeFormatter(ABC):
    """Converts an internal value to a basic wire type and back.

    Subclasses implement ``format_value`` and ``parse_value``; the public
    ``format`` and ``parse`` methods check that the wire side really is of
    ``basic_type``.
    """

    basic_type: ScalarType = ScalarType.STRING
    description: str = ""

    def __init__(self) -> None:
        if self.basic_type not in WIRE_TYPES:
            raise InvalidConfigurationError(
                f"{type(self).__name__} must format to one of {[t.value for t in WIRE_TYPES]}"
            )
        self.description = self.description[:MAX_DESCRIPTION_LENGTH]

    @abstractmethod
    def format_value(self, value: Any) -> Any:
        """Convert an internal value to its wire representation."""

    @abstractmethod
    def parse_value(self, raw: Any) -> Any:
        """Convert a wire value to its internal representation."""

    def format(self, value: Any) -> Any:
        result = self.format_value(value)
        if not matches_scalar(result, self.basic_type):
            raise TypeError(f"{type(self).__name__} produced {type(result).__name__}, expected {self.basic_type.value}")
        return result

    def parse(self, raw: Any) -> Any:
        if not matches_scalar(raw, self.basic_type):
            raise RequestParsingError(f"Expected a {self.basic_type.value} ({self.description})")
        return self.parse_value(raw)


class StorageFormatter(ABC):
    """Formatter side used by the table-mapping layer."""

    storage_type: Type[TypeEngine] = String

    @abstractmethod
    def to_storage(self, value: Any) -> Any:
        """Convert an internal value to the value bound to a column."""

    @abstractmethod
    def from_storage(self, raw: Any) -> Any:
        """Convert a column value to the internal representation."""


class FilterValueAdapter(ABC):
    """Formatter side used when a property appears in a query-string filter."""

    @abstractmethod
    def filter_value(self, raw: str) -> Any:
        """Convert a raw query-string value to the value compared in storage."""


class PassthroughFormatter:
    """Formatter for basic scalar properties: checks types, converts nothing."""

    def __init__(self, scalars: Iterable[ScalarType], nullable: bool = False) -> None:
        self.scalars = tuple(scalars)
        self.nullable = nullable

    def _accepts(self, value: Any) -> bool:
        if value is None:
            return True
        return any(matches_scalar(value, scalar) for scalar in self.scalars)

    def format(self, value: Any) -> Any:
        if not self._accepts(value):
            raise TypeError(f"Value of type {type(value).__name__} does not match {[s.value for s in self.scalars]}")
        if isinstance(value, tuple):
            return list(value)
        return value

    def parse(self, raw: Any) -> Any:
        if not self._accepts(raw):
            raise RequestParsingError(f"Expected {' or '.join(s.value for s in self.scalars)}")
        return raw


class _TemporalFormatter(TypeFormatter, StorageFormatter, FilterValueAdapter):
    wire_format = ""
    storage_format = ""
    storage_type = String

    def _from_datetime(self, value: datetime) -> Any:
        return value

    def _strptime(self, raw: str, fmt: str) -> Any:
        try:
            return self._from_datetime(datetime.strptime(raw, fmt))
        except ValueError as exc:
            raise RequestParsingError(f"'{raw}' does not match the format '{self.description}'") from exc

    def format_value(self, value: Any) -> Any:
        return value.strftime(self.wire_format)

    def parse_value(self, raw: Any) -> Any:
        return self._strptime(raw, self.wire_format)

    def to_storage(self, value: Any) -> Any:
        return value.strftime(self.storage_format)

    def from_storage(self, raw: Any) -> Any:
        if isinstance(raw, (date, time)):
            if isinstance(raw, datetime):
                return self._from_datetime(raw)
            return raw
        return self._strptime(str(raw), self.storage_format)

    def filter_value(self, raw: str) -> Any:
        return self.to_storage(self.parse(raw))


class DateFormatter(_TemporalFormatter):
    description = "day/month/year"
    wire_format = "%d/%m/%Y"
    storage_format = "%Y-%m-%d"

    def _from_datetime(self, value: datetime) -> date:
        return value.date()


class DateTimeFormatter(_TemporalFormatter):
    description = "dd/mm/yyyy hh:mm:ss"
    wire_format = "%d/%m/%Y %H:%M:%S"
    storage_format = "%Y-%m-%d %H:%M:%S"


class ShortTimeFormatter(_TemporalFormatter):
    description = "hour:minute"
    wire_format = "%H:%M"
    storage_format = "%H:%M:%S"

    def _from_datetime(self, value: datetime) -> time:
        return value.time()


class LongTimeFormatter(ShortTimeFormatter):
    description = "hour:minute:second"
    wire_format = "%H:%M:%S"


class PreciseTimeFormatter(ShortTimeFormatter):
    description = "hour:minute:second.microsecond"
    wire_format = "%H:%M:%S.%f"
    storage_format = "%H:%M:%S.%f"


class PriceFormatter(TypeFormatter, StorageFormatter, FilterValueAdapter):
    description = "price (two decimals)"
    storage_type = Float

    _CENTS = Decimal("0.01")

    def _decimal(self, raw: Any) -> Decimal:
        try:
            return Decimal(str(raw).strip()).quantize(self._CENTS)
        except InvalidOperation as exc:
            raise RequestParsingError(f"'{raw}' is not a valid price") from exc

    def format_value(self, value: Any) -> str:
        return f"{Decimal(value).quantize(self._CENTS):.2f}"

    def parse_value(self, raw: Any) -> Decimal:
        return self._decimal(raw)

    def to_storage(self, value: Any) -> float:
        return float(value)

    def from_storage(self, raw: Any) -> Decimal:
        return self._decimal(raw)

    def filter_value(self, raw: str) -> float:
        return float(self._decimal(raw))


class PhoneFormatter(TypeFormatter, StorageFormatter, FilterValueAdapter):
    description = "phone number (+ and digits)"

    _DISALLOWED = re.compile(r"[^+A-Z0-9]", re.IGNORECASE)

    def format_value(self, value: Any) -> str:
        return value

    def parse_value(self, raw: Any) -> str:
        raw = raw.strip()
        if not raw.startswith("+"):
            raise RequestParsingError("Phone numbers must start with '+' followed by the country code")
        return self._DISALLOWED.sub("", raw)

    def to_storage(self, value: Any) -> str:
        return value

    def from_storage(self, raw: Any) -> str:
        return str(raw)

    def filter_value(self, raw: str) -> str:
        return self.parse(raw)


def default_formatters(extra: Optional[Dict[str, TypeFormatter]] = None) -> Dict[str, TypeFormatter]:
    """Build the formatter table used for type resolution.

    Args:
        extra: Application formatters added to (or replacing) the built-ins

    Returns:
        Formatter instances keyed by the name used in type specifications
    """
    formatters: Dict[str, TypeFormatter] = {
        "Date": DateFormatter(),
        "DateTime": DateTimeFormatter(),
        "ShortTime": ShortTimeFormatter(),
        "LongTime": LongTimeFormatter(),
        "PreciseTime": PreciseTimeFormatter(),
        "Price": PriceFormatter(),
        "Phone": PhoneFormatter(),
    }
    formatters.update(extra or {})
    return formatters
