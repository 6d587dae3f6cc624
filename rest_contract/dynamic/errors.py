"""Error taxonomy for contract dispatch.

Every failure a caller can see is one of the classes below. Each carries
the pipeline stage that failed so callers can tell a malformed contract
from bad arguments, a rejected request or a network failure.
"""

import json
from enum import Enum
from typing import Any, Iterable, Optional


class PipelineStage(Enum):
    """Stages of a dispatched call, in execution order"""
    DESCRIBE = "describe"
    CONFIGURE = "configure"
    BIND = "bind"
    SYNTHESIZE = "synthesize"
    SEND = "send"
    MAP = "map"


class ContractClientError(Exception):
    """Base class for every error raised by the dispatch engine"""

    default_stage: Optional[PipelineStage] = None

    def __init__(self, message: str, stage: Optional[PipelineStage] = None):
        self.stage = stage or self.default_stage
        super().__init__(message)


class ContractDefinitionError(ContractClientError):
    """Raised at registration time when contract metadata is malformed."""

    default_stage = PipelineStage.DESCRIBE

    def __init__(self, contract: str, reason: str, method: Optional[str] = None):
        self.contract = contract
        self.method = method
        self.reason = reason
        where = f"{contract}.{method}" if method else contract
        super().__init__(f"Invalid contract {where}: {reason}")


class UnresolvedPlaceholderError(ContractClientError):
    default_stage = PipelineStage.SYNTHESIZE

    def __init__(self, template: str, missing: Iterable[str]):
        self.template = template
        self.missing = tuple(missing)
        names = ", ".join(self.missing)
        super().__init__(f"Unresolved placeholder(s) {names} in template '{template}'")


class UnsupportedParameterBindingError(ContractClientError):
    default_stage = PipelineStage.BIND

    def __init__(self, method: str, reason: str, parameter: Optional[str] = None):
        self.method = method
        self.parameter = parameter
        self.reason = reason
        where = f"{method}({parameter})" if parameter else method
        super().__init__(f"Cannot bind {where}: {reason}")


class SerializationError(ContractClientError):
    default_stage = PipelineStage.SYNTHESIZE

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to serialize request body: {cause}")


class DeserializationError(ContractClientError):
    default_stage = PipelineStage.MAP

    def __init__(self, cause: Any, raw_body: bytes = b""):
        self.cause = cause
        self.raw_body = raw_body
        super().__init__(f"Failed to deserialize response body: {cause}")


class ResponseStatusError(ContractClientError):
    """A response arrived but its status is not a success."""

    default_stage = PipelineStage.MAP
    label = "Unexpected status"

    def __init__(self, status: int, raw_body: bytes = b""):
        self.status = status
        self.raw_body = raw_body or b""
        super().__init__(f"{self.label} {status}: {self.body[:200]}")

    @property
    def body(self) -> str:
        return self.raw_body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Parse the error body as JSON

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.body)


class ClientRequestError(ResponseStatusError):
    label = "Client error"


class ServiceFailureError(ResponseStatusError):
    label = "Service failure"


class UnexpectedStatusError(ResponseStatusError):
    pass


class TransportError(ContractClientError):
    """Network failure or timeout; no response was received."""

    default_stage = PipelineStage.SEND

    def __init__(self, cause: Optional[BaseException] = None, timeout: bool = False):
        self.cause = cause
        self.timeout = timeout
        if timeout:
            message = "Request timed out"
        else:
            message = f"Transport failure: {cause}"
        super().__init__(message)


class RequestCancelledError(ContractClientError):
    """The caller signalled cancellation before the call completed."""

    default_stage = PipelineStage.SEND

    def __init__(self, sent: bool = False):
        self.sent = sent
        when = "while sending" if sent else "before sending"
        super().__init__(f"Request cancelled {when}")


__all__ = [
    "PipelineStage",
    "ContractClientError",
    "ContractDefinitionError",
    "UnresolvedPlaceholderError",
    "UnsupportedParameterBindingError",
    "SerializationError",
    "DeserializationError",
    "ResponseStatusError",
    "ClientRequestError",
    "ServiceFailureError",
    "UnexpectedStatusError",
    "TransportError",
    "RequestCancelledError",
]
