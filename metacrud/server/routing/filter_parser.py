"""
Query Filter Parsing.

Translates query parameters (and path captures) of the form
``_[tag*]label[_nested...]`` into filter groups:

- ``_name=a`` filters on ``name`` equal to ``a``;
- ``_lines_product=3`` descends into the nested ``lines`` collection;
- ``_name!`` / ``_name~`` / ``_!name~`` compare with <>, LIKE and NOT LIKE;
- ``_min@qty`` / ``_x-min@qty`` / ``_max@qty`` / ``_x-max@qty`` compare with
  >=, >, <= and <;
- ``_t1*name=a&_t1*qty=3`` puts both filters in their own AND-group ``t1*``.

Untagged filters form the first group; the groups are ORed together.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from metacrud.core.exceptions import RequestParsingError
from metacrud.core.model.descriptor import PropertyDescriptor
from metacrud.core.model.entity import EntityType
from metacrud.core.model.filters import Comparator, FilterExpression, FilterGroups
from metacrud.core.model.formatters import FilterValueAdapter
from metacrud.core.model.session import ANONYMOUS, SessionInfo
from metacrud.core.model.types import ScalarType, TypeKind

FILTER_PREFIX = "_"
TAG_PATTERN = re.compile(r"^(.+)\*")
SEGMENT_SEPARATOR = re.compile(r"[_.]")

# Only the exclusive prefixes ignore case.
PREFIX_COMPARATORS: Tuple[Tuple[Pattern, Comparator], ...] = (
    (re.compile(r"^x-min@", re.IGNORECASE), Comparator.GT),
    (re.compile(r"^min@"), Comparator.GTE),
    (re.compile(r"^x-max@", re.IGNORECASE), Comparator.LT),
    (re.compile(r"^max@"), Comparator.LTE),
)

QueryValues = Mapping[str, Sequence[Optional[str]]]


def parse_comparator(segment: str) -> Tuple[str, Comparator]:
    """Split the comparator marker off the last segment of a filter key.

    Returns:
        The bare label and its comparator

    Raises:
        RequestParsingError: A prefix comparator is combined with ``!`` or ``~``
    """
    for prefix, comparator in PREFIX_COMPARATORS:
        found = prefix.match(segment)
        if found:
            label = segment[found.end():]
            if "!" in label or "~" in label:
                raise RequestParsingError(f"Comparator markers cannot be combined in '{segment}'")
            return label, comparator
    if segment.startswith("!") and segment.endswith("~"):
        return segment[1:-1], Comparator.NOT_LIKE
    if segment.endswith("!"):
        return segment[:-1], Comparator.NEQ
    if segment.endswith("~"):
        return segment[:-1], Comparator.LIKE
    return segment, Comparator.EQ


def coerce_scalar(descriptor: PropertyDescriptor, raw: str) -> Any:
    """Convert a query string into a value of one of the accepted scalar types.

    The accepted types are tried in declaration order.

    Raises:
        RequestParsingError: No accepted type can represent ``raw``
    """
    return _coerce(descriptor.type.scalars, raw, descriptor.label)


def _coerce(scalars: Sequence[ScalarType], raw: str, label: str) -> Any:
    for scalar in scalars:
        if scalar is ScalarType.BOOLEAN:
            if raw in ("true", "false"):
                return raw == "true"
        elif scalar is ScalarType.INTEGER:
            try:
                return int(raw)
            except ValueError:
                continue
        elif scalar is ScalarType.DOUBLE:
            try:
                return float(raw)
            except ValueError:
                continue
        elif scalar is ScalarType.STRING:
            return raw
    raise RequestParsingError(f"Invalid value '{raw}' for '{label}'")


def _is_value_filterable(descriptor: PropertyDescriptor) -> bool:
    kind = descriptor.type.kind
    if kind is TypeKind.FORMATTED:
        return isinstance(descriptor.type.formatter, FilterValueAdapter)
    if kind is TypeKind.SCALAR:
        return any(scalar is not ScalarType.ARRAY for scalar in descriptor.type.scalars)
    return False


def filter_value(descriptor: PropertyDescriptor, raw: Optional[str], comparator: Comparator = Comparator.EQ) -> Any:
    """Value of a filter on ``descriptor``, in storage representation."""
    if raw is None:
        return None
    if comparator in (Comparator.LIKE, Comparator.NOT_LIKE):
        return raw
    if descriptor.type.kind is TypeKind.FORMATTED:
        return descriptor.type.formatter.filter_value(raw)
    return coerce_scalar(descriptor, raw)


def parse_positional(descriptor: PropertyDescriptor, raw: str) -> Any:
    """Internal value of a primary key given in the URL, ready for ``Entity.set``."""
    if descriptor.type.kind is TypeKind.FORMATTED:
        formatter = descriptor.type.formatter
        if formatter.basic_type is not ScalarType.STRING:
            raw = _coerce((formatter.basic_type,), raw, descriptor.label)
        return formatter.parse(raw)
    return coerce_scalar(descriptor, raw)


class FilterParser:
    """Builds filter groups for one entity type.

    Args:
        entity_type: Root entity of the request
        is_filterable: ``(route, label) -> bool`` answered by the persistence engine
        session: Caller; properties hidden from it cannot be filtered
    """

    def __init__(self, entity_type: EntityType, is_filterable, session: SessionInfo = ANONYMOUS) -> None:
        self.entity_type = entity_type
        self.is_filterable = is_filterable
        self.session = session

    def parse(self, query: QueryValues, captures: Optional[Mapping[str, str]] = None) -> FilterGroups:
        """Filter groups from query values and path captures.

        Args:
            query: Query parameter name to its values (repeated keys give several values)
            captures: Named path captures, treated as ``_<name>`` filters

        Returns:
            The untagged group followed by one group per tag

        Raises:
            RequestParsingError: A capture repeats a query key, or a filter is invalid
        """
        params: Dict[str, Sequence[Optional[str]]] = dict(query)
        captured = {f"{FILTER_PREFIX}{name}": [value] for name, value in (captures or {}).items() if value is not None}
        repeated = sorted(set(captured) & set(params))
        if repeated:
            raise RequestParsingError(f"Repeated keys: {', '.join(repeated)}")
        params.update(captured)

        untagged: List[FilterExpression] = []
        tagged: Dict[str, List[FilterExpression]] = {}
        for key, values in params.items():
            if not key.startswith(FILTER_PREFIX):
                continue
            key = key[len(FILTER_PREFIX):]
            match = TAG_PATTERN.match(key)
            tag = None
            if match:
                tag = match.group(0)
                key = key[len(tag):]
            expression = self.expression(key, values)
            if tag is None:
                untagged.append(expression)
            else:
                tagged.setdefault(tag, []).append(expression)
        return [untagged] + list(tagged.values())

    def expression(self, key: str, values: Sequence[Optional[str]]) -> FilterExpression:
        """Resolve one filter key, walking nested entities segment by segment."""
        segments = SEGMENT_SEPARATOR.split(key)
        entity_type = self.entity_type
        route: List[str] = []
        for segment in segments[:-1]:
            descriptor = entity_type.descriptor(segment)
            if (
                descriptor is None
                or not descriptor.type.is_entity
                or not descriptor.visible_for(self.session)
                or not self.is_filterable(tuple(route), segment)
            ):
                raise self._not_filterable(route, segment)
            route.append(segment)
            entity_type = entity_type.registry.entity_type(descriptor.type.target)

        label, comparator = parse_comparator(segments[-1])
        descriptor = entity_type.descriptor(label)
        if (
            descriptor is None
            or not _is_value_filterable(descriptor)
            or not descriptor.visible_for(self.session)
            or not self.is_filterable(tuple(route), label)
        ):
            raise self._not_filterable(route, label)
        try:
            parsed = tuple(filter_value(descriptor, raw, comparator) for raw in values)
        except RequestParsingError as exc:
            raise RequestParsingError(f"Error parsing {'.'.join(route + [label])}: {exc.message}") from exc
        return FilterExpression(label, comparator, parsed, tuple(route))

    @staticmethod
    def _not_filterable(route: List[str], label: str) -> RequestParsingError:
        return RequestParsingError(f"The property '{'.'.join(route + [label])}' cannot be used as a filter")
