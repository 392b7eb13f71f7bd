"""
Filter Algebra.

A ``FilterExpression`` is one predicate on a property, optionally located in
a nested entity through ``route``. Lists of expressions form AND-groups, and
every read or delete receives a list of groups that are ORed together.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from metacrud.core.exceptions import RequestParsingError


class Comparator(IntEnum):
    EQ = 0
    NEQ = 1
    GT = 2
    LT = 3
    LIKE = 4
    NOT_LIKE = 5
    GTE = 6
    LTE = 7

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    Comparator.EQ: "=",
    Comparator.NEQ: "<>",
    Comparator.GT: ">",
    Comparator.GTE: ">=",
    Comparator.LT: "<",
    Comparator.LTE: "<=",
    Comparator.LIKE: "LIKE",
    Comparator.NOT_LIKE: "NOT LIKE",
}

NULL_COMPARATORS = (Comparator.EQ, Comparator.NEQ)


@dataclass(frozen=True)
class FilterExpression:
    """Predicate ``label <comparator> value`` for any of ``values``.

    A ``None`` among the values means IS NULL for EQ and IS NOT NULL for NEQ.
    """

    label: str
    comparator: Comparator = Comparator.EQ
    values: Tuple[Any, ...] = ()
    route: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))
        object.__setattr__(self, "route", tuple(self.route))
        if not self.values:
            raise RequestParsingError(f"The filter on '{self.routed_label}' has no value")
        if None in self.values and self.comparator not in NULL_COMPARATORS:
            raise RequestParsingError(
                f"The filter on '{self.routed_label}' can only compare with null using equality"
            )

    @classmethod
    def eq(cls, label: str, *values: Any, route: Iterable[str] = ()) -> "FilterExpression":
        return cls(label, Comparator.EQ, values, tuple(route))

    @property
    def routed_label(self) -> str:
        return ".".join(self.route + (self.label,))

    @property
    def head(self) -> str:
        return self.route[0]

    def descend(self) -> "FilterExpression":
        """Same predicate seen from the entity one level down the route."""
        return FilterExpression(self.label, self.comparator, self.values, self.route[1:])

    def __str__(self) -> str:
        values = ", ".join(repr(value) for value in self.values)
        return f"{self.routed_label} {self.comparator.symbol} ({values})"


FilterGroup = List[FilterExpression]
FilterGroups = List[FilterGroup]


def pk_filter_groups(
    labels: Sequence[str], pks: Iterable[Union[Sequence[Any], Mapping[str, Any]]]
) -> FilterGroups:
    """Build one EQ group per primary key.

    Args:
        labels: Primary-key labels in declaration order
        pks: Key values, either positional sequences or mappings by label

    Returns:
        Filter groups matching exactly the given keys
    """
    groups: FilterGroups = []
    for pk in pks:
        if isinstance(pk, Mapping):
            values = [pk[label] for label in labels]
        else:
            values = list(pk)
            if len(values) != len(labels):
                raise RequestParsingError(f"Expected {len(labels)} primary key values, got {len(values)}")
        groups.append([FilterExpression.eq(label, value) for label, value in zip(labels, values)])
    return groups
