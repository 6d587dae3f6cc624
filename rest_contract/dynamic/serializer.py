"""Body serializers.

The engine only relies on the `Serializer` interface; `JsonSerializer` is
the default and understands dataclasses, enums, dates and the usual
container types.
"""

import dataclasses
import json
import typing
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Union

from .models import ResultShape, ShapeKind


class Serializer(ABC):
    """Converts request bodies to bytes and response bodies back to values"""

    content_type = "application/octet-stream"

    @abstractmethod
    def serialize(self, value: Any) -> bytes:
        """Encode a request body"""

    @abstractmethod
    def deserialize(self, data: bytes, shape: ResultShape) -> Any:
        """Decode a response body into the declared result shape"""


class JsonSerializer(Serializer):
    content_type = "application/json"

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def serialize(self, value: Any) -> bytes:
        return json.dumps(self.to_primitive(value)).encode(self.encoding)

    def deserialize(self, data: bytes, shape: ResultShape) -> Any:
        target = shape.target
        if shape.kind is ShapeKind.ENTITY and target is bytes:
            return data
        text = data.decode(self.encoding)
        if shape.kind is ShapeKind.ENTITY and target is str:
            try:
                payload = json.loads(text)
            except ValueError:
                return text
            return payload if isinstance(payload, str) else text

        payload = json.loads(text)
        if shape.kind is ShapeKind.SEQUENCE:
            if not isinstance(payload, list):
                raise TypeError(f"expected a JSON array, got {type(payload).__name__}")
            return [self.from_primitive(item, target) for item in payload]
        return self.from_primitive(payload, target)

    def to_primitive(self, value: Any) -> Any:
        """Reduce a value to JSON-compatible primitives"""
        if value is None or isinstance(value, (str, bool, int, float)):
            return value
        if isinstance(value, Enum):
            return self.to_primitive(value.value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {f.name: self.to_primitive(getattr(value, f.name)) for f in dataclasses.fields(value)}
        if isinstance(value, Mapping):
            return {str(k): self.to_primitive(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.to_primitive(v) for v in value]
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    def from_primitive(self, data: Any, target: Any) -> Any:
        """Rebuild a value of type `target` from JSON primitives

        Raises:
            TypeError: If the data does not fit the target type
            ValueError: If a scalar cannot be converted
        """
        if target is Any or target is object or target is None:
            return data

        origin = typing.get_origin(target)
        args = typing.get_args(target)

        if origin is Union:
            if data is None and type(None) in args:
                return None
            errors = []
            for arg in args:
                if arg is type(None):
                    continue
                try:
                    return self.from_primitive(data, arg)
                except (TypeError, ValueError) as e:
                    errors.append(str(e))
            raise TypeError(f"{data!r} does not match {target}: {'; '.join(errors)}")

        if origin in (list, tuple, set, frozenset) or target in (list, tuple, set, frozenset):
            if not isinstance(data, list):
                raise TypeError(f"expected a list for {target}, got {type(data).__name__}")
            item_type = args[0] if args else Any
            items = [self.from_primitive(item, item_type) for item in data]
            container = origin or target
            return items if container is list else container(items)

        if origin is dict or target is dict:
            if not isinstance(data, dict):
                raise TypeError(f"expected an object for {target}, got {type(data).__name__}")
            value_type = args[1] if len(args) == 2 else Any
            return {k: self.from_primitive(v, value_type) for k, v in data.items()}

        if dataclasses.is_dataclass(target):
            if not isinstance(data, dict):
                raise TypeError(f"expected an object for {target.__name__}, got {type(data).__name__}")
            hints = typing.get_type_hints(target)
            kwargs = {}
            for f in dataclasses.fields(target):
                if f.init and f.name in data:
                    kwargs[f.name] = self.from_primitive(data[f.name], hints.get(f.name, Any))
            return target(**kwargs)

        if isinstance(target, type) and issubclass(target, Enum):
            return target(data)
        if target is datetime:
            return datetime.fromisoformat(data)
        if target is date:
            return date.fromisoformat(data)
        if target is bool:
            if not isinstance(data, bool):
                raise TypeError(f"expected a boolean, got {data!r}")
            return data
        if target is int:
            if isinstance(data, bool) or not isinstance(data, int):
                raise TypeError(f"expected an integer, got {data!r}")
            return data
        if target is float:
            if isinstance(data, bool) or not isinstance(data, (int, float)):
                raise TypeError(f"expected a number, got {data!r}")
            return float(data)
        if target is str:
            if not isinstance(data, str):
                raise TypeError(f"expected a string, got {data!r}")
            return data
        if isinstance(target, type) and isinstance(data, target):
            return data
        raise TypeError(f"cannot convert {type(data).__name__} to {target}")


DEFAULT_SERIALIZER = JsonSerializer()


__all__ = [
    "Serializer",
    "JsonSerializer",
    "DEFAULT_SERIALIZER",
]
