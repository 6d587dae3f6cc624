"""Binding call arguments to request parts."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple

from .errors import UnsupportedParameterBindingError
from .models import BindingKind, MethodDescriptor

SEQUENCE_TYPES = (list, tuple, set, frozenset)


@dataclass
class BoundParameters:
    """Call arguments sorted into the request parts they belong to"""
    path_values: Dict[str, str] = field(default_factory=dict)
    query_entries: List[Tuple[str, str]] = field(default_factory=list)
    header_entries: Dict[str, str] = field(default_factory=dict)
    cookie_entries: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    has_body: bool = False


def format_value(value: Any) -> str:
    """Render a scalar the way it should appear on the wire"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return format_value(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def bind(method: MethodDescriptor, arguments: Mapping[str, Any]) -> BoundParameters:
    """Sort call arguments into path, query, header, cookie and body parts

    Query entries keep declaration order. `None` query, header and cookie
    values are left out of the request.

    Raises:
        UnsupportedParameterBindingError: If the method has more than one body
            parameter, a required argument is missing, or a path or required
            body argument is None
    """
    bodies = method.bindings(BindingKind.BODY)
    if len(bodies) > 1:
        raise UnsupportedParameterBindingError(method.name, "more than one body parameter")

    bound = BoundParameters()
    for binding in method.parameters:
        if binding.name in arguments:
            value = arguments[binding.name]
        elif binding.required:
            raise UnsupportedParameterBindingError(method.name, "missing required argument", binding.name)
        else:
            value = binding.default

        if binding.kind is BindingKind.PATH:
            if value is None:
                raise UnsupportedParameterBindingError(method.name, "path value must not be None", binding.name)
            bound.path_values[binding.wire_name] = format_value(value)

        elif binding.kind is BindingKind.BODY:
            if value is None:
                if binding.required:
                    raise UnsupportedParameterBindingError(method.name, "body value must not be None", binding.name)
                continue
            bound.body = value
            bound.has_body = True

        elif value is None:
            continue

        elif binding.kind is BindingKind.QUERY:
            if isinstance(value, SEQUENCE_TYPES):
                items = [format_value(v) for v in value if v is not None]
                if binding.style == "csv":
                    bound.query_entries.append((binding.wire_name, ",".join(items)))
                else:
                    bound.query_entries.extend((binding.wire_name, item) for item in items)
            else:
                bound.query_entries.append((binding.wire_name, format_value(value)))

        elif binding.kind is BindingKind.HEADER:
            if isinstance(value, SEQUENCE_TYPES):
                bound.header_entries[binding.wire_name] = ", ".join(format_value(v) for v in value)
            else:
                bound.header_entries[binding.wire_name] = format_value(value)

        elif binding.kind is BindingKind.COOKIE:
            bound.cookie_entries[binding.wire_name] = format_value(value)

    return bound


__all__ = [
    "BoundParameters",
    "format_value",
    "bind",
]
