"""Conversion between catalog dataclasses and DynamoDB attribute maps."""

import dataclasses
import math
import re
import types
import typing
from datetime import UTC, datetime
from enum import Enum
from functools import cache
from typing import Any, TypeVar
from uuid import UUID

from .exceptions import MappingError

T = TypeVar("T")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
"""Fixed-width UTC format; stored timestamps sort lexically in time order."""

_INTEGER = re.compile(r"^-?\d+$")


def attribute_name(field_name: str) -> str:
    """Convert a snake_case field name to its stored camelCase attribute name."""
    head, *rest = field_name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as a fixed-width UTC string. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)


# ---------------------------------------------------------------------------
# Generic value serialization
# ---------------------------------------------------------------------------


def serialize_value(value: Any) -> dict[str, Any]:
    """Serialize a Python value to a DynamoDB AttributeValue."""
    if value is None:
        return {"NULL": True}
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, int):
        return {"N": str(value)}
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite number {value!r} cannot be stored")
        return {"N": repr(value)}
    if isinstance(value, str):
        return {"S": value}
    if isinstance(value, Enum):
        return {"S": str(value.value)}
    if isinstance(value, UUID):
        return {"S": str(value)}
    if isinstance(value, datetime):
        return {"S": format_timestamp(value)}
    if isinstance(value, dict):
        return {"M": serialize_map(value)}
    if isinstance(value, list | tuple):
        return {"L": [serialize_value(v) for v in value]}
    raise TypeError(f"unsupported type {type(value).__name__}")


def serialize_map(data: dict[str, Any]) -> dict[str, Any]:
    """Serialize a dict to a DynamoDB map, keeping nested None as NULL."""
    result = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise TypeError(f"map keys must be strings, got {type(key).__name__}")
        result[key] = serialize_value(value)
    return result


def deserialize_number(value: str) -> int | float:
    """
    Decode an untyped stored number.

    DynamoDB normalizes numbers, so an integral float such as 2.0 is read
    back as "2" and decodes as int. Fields typed float always decode as float.
    """
    if _INTEGER.match(value):
        return int(value)
    return float(value)


def deserialize_value(value: dict[str, Any]) -> Any:
    """Deserialize a DynamoDB AttributeValue to a plain Python value."""
    if "NULL" in value:
        return None
    if "S" in value:
        return value["S"]
    if "N" in value:
        return deserialize_number(value["N"])
    if "BOOL" in value:
        return value["BOOL"]
    if "M" in value:
        return deserialize_map(value["M"])
    if "L" in value:
        return [deserialize_value(v) for v in value["L"]]
    if "SS" in value:
        return list(value["SS"])
    if "NS" in value:
        return [deserialize_number(v) for v in value["NS"]]
    raise ValueError(f"unsupported attribute value {sorted(value)}")


def deserialize_map(data: dict[str, Any]) -> dict[str, Any]:
    return {k: deserialize_value(v) for k, v in data.items()}


# ---------------------------------------------------------------------------
# Typed field decoding
# ---------------------------------------------------------------------------


def _unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _decode_typed(hint: Any, value: dict[str, Any]) -> Any:
    if "NULL" in value:
        return None
    if hint is Any:
        return deserialize_value(value)
    if isinstance(hint, type):
        if issubclass(hint, bool):
            return value["BOOL"]
        if issubclass(hint, Enum):
            return hint(value["S"])
        if issubclass(hint, UUID):
            return UUID(value["S"])
        if issubclass(hint, datetime):
            return parse_timestamp(value["S"])
        if issubclass(hint, int):
            number = deserialize_number(value["N"])
            if isinstance(number, float) and not number.is_integer():
                raise ValueError(f"expected an integer, got {value['N']}")
            return int(number)
        if issubclass(hint, float):
            return float(value["N"])
        if issubclass(hint, str):
            return value["S"]
    origin = typing.get_origin(hint)
    if origin is list:
        (item_hint,) = typing.get_args(hint) or (Any,)
        return [_decode_typed(_unwrap_optional(item_hint), v) for v in value["L"]]
    return deserialize_value(value)


@dataclasses.dataclass(frozen=True)
class FieldPlan:
    name: str
    attribute: str
    hint: Any


@cache
def field_plan(entity_type: type) -> tuple[FieldPlan, ...]:
    """Resolve the stored attribute name and decode type of every field."""
    hints = typing.get_type_hints(entity_type)
    return tuple(
        FieldPlan(f.name, attribute_name(f.name), _unwrap_optional(hints[f.name]))
        for f in dataclasses.fields(entity_type)
    )


class AttributeMapper:
    """
    Converts catalog entities to DynamoDB items and back.

    Top-level ``None`` fields are omitted from items; absent attributes
    decode to the field default. Stored attributes that are not entity
    fields are ignored on decode.
    """

    def to_item(self, entity: Any) -> dict[str, Any]:
        """Convert an entity to a DynamoDB item."""
        entity_type = type(entity)
        item: dict[str, Any] = {}
        for plan in field_plan(entity_type):
            value = getattr(entity, plan.name)
            if value is None:
                continue
            try:
                item[plan.attribute] = serialize_value(value)
            except (TypeError, ValueError) as e:
                raise MappingError(entity_type.__name__, f"field {plan.name}: {e}") from e
        return item

    def to_entity(self, entity_type: type[T], item: dict[str, Any]) -> T:
        """Convert a DynamoDB item to an entity of ``entity_type``."""
        kwargs: dict[str, Any] = {}
        for plan in field_plan(entity_type):
            if plan.attribute not in item:
                continue
            try:
                kwargs[plan.name] = _decode_typed(plan.hint, item[plan.attribute])
            except (KeyError, TypeError, ValueError) as e:
                raise MappingError(entity_type.__name__, f"attribute {plan.attribute}: {e}") from e
        try:
            return entity_type(**kwargs)
        except TypeError as e:
            raise MappingError(entity_type.__name__, str(e)) from e
