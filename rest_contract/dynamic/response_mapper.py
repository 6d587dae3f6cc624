"""Mapping transport outcomes to results or errors."""

from typing import Any

from .errors import (
    ClientRequestError,
    DeserializationError,
    ServiceFailureError,
    TransportError,
    UnexpectedStatusError,
)
from .models import OutcomeKind, ResponseOutcome, ResultShape, ShapeKind
from .serializer import DEFAULT_SERIALIZER, Serializer


def map_response(outcome: ResponseOutcome, shape: ResultShape, serializer: Serializer = DEFAULT_SERIALIZER) -> Any:
    """Turn a response outcome into the declared result or raise

    | outcome          | void         | entity / sequence          |
    |------------------|--------------|----------------------------|
    | 2xx              | None         | deserialized body          |
    | 4xx              | ClientRequestError                        |
    | 5xx              | ServiceFailureError                       |
    | no response      | TransportError                            |

    Raises:
        DeserializationError: If the body is empty or malformed for the shape
    """
    if outcome.kind is OutcomeKind.TRANSPORT_FAILURE:
        raise TransportError(outcome.cause)
    if outcome.kind is OutcomeKind.CLIENT_ERROR:
        raise ClientRequestError(outcome.status, outcome.body)
    if outcome.kind is OutcomeKind.SERVER_ERROR:
        raise ServiceFailureError(outcome.status, outcome.body)
    if outcome.kind is not OutcomeKind.SUCCESS:
        raise UnexpectedStatusError(outcome.status, outcome.body)

    if shape.kind is ShapeKind.VOID:
        return None
    if not outcome.body:
        raise DeserializationError(f"empty body for {shape.kind.value} result", outcome.body)
    try:
        return serializer.deserialize(outcome.body, shape)
    except Exception as e:
        raise DeserializationError(e, outcome.body) from e


__all__ = [
    "map_response",
]
