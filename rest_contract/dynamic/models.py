"""Data models for contract descriptors and per-call request records.

Descriptors are built once per contract and shared by every proxy for
that contract, so they are frozen and use tuples for ordered collections.
Request and response records are created and discarded within one call.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import ContractDefinitionError

Pairs = Tuple[Tuple[str, str], ...]


class HTTPMethod(Enum):
    """Supported HTTP methods for contract methods"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @property
    def carries_body(self) -> bool:
        return self in (HTTPMethod.POST, HTTPMethod.PUT, HTTPMethod.PATCH)


class BindingKind(Enum):
    """Where a call argument ends up in the HTTP request"""
    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"
    COOKIE = "cookie"


class ShapeKind(Enum):
    VOID = "void"
    ENTITY = "entity"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class ResultShape:
    """Declared result of a contract method

    Args:
        kind: void, single entity or sequence of entities
        target: Entity type, or element type for sequences (Any when untyped)
    """
    kind: ShapeKind
    target: Any = Any

    @classmethod
    def void(cls) -> "ResultShape":
        return cls(ShapeKind.VOID, type(None))


@dataclass(frozen=True)
class ParameterBinding:
    """How one declared parameter is bound into the request

    Args:
        name: Parameter name as declared on the contract method
        kind: Binding kind (path, query, body, header, cookie)
        position: Zero-based position in the method signature
        wire_name: Name used on the wire (query key, header or cookie name)
        annotation: Declared parameter type
        required: Whether the caller must supply the parameter
        default: Default value for optional parameters
        style: Serialization hint ("multi" or "csv" for query sequences)
        description: Free text used for tool documentation
    """
    name: str
    kind: BindingKind
    position: int
    wire_name: str
    annotation: Any = Any
    required: bool = True
    default: Any = None
    style: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class MethodDescriptor:
    """Immutable description of one contract method"""
    name: str
    verb: HTTPMethod
    path: str
    parameters: Tuple[ParameterBinding, ...] = ()
    result: ResultShape = field(default_factory=ResultShape.void)
    headers: Pairs = ()
    cookies: Pairs = ()
    timeout: Optional[float] = None
    base_address: Optional[str] = None
    config_placeholders: Tuple[str, ...] = ()
    description: str = ""

    def bindings(self, kind: BindingKind) -> Tuple[ParameterBinding, ...]:
        return tuple(p for p in self.parameters if p.kind is kind)

    @property
    def body_binding(self) -> Optional[ParameterBinding]:
        bodies = self.bindings(BindingKind.BODY)
        return bodies[0] if bodies else None


@dataclass(frozen=True)
class ContractDescriptor:
    """Immutable description of a whole service contract"""
    name: str
    base_address: str
    methods: Tuple[MethodDescriptor, ...] = ()
    headers: Pairs = ()
    cookies: Pairs = ()
    variables: Pairs = ()
    timeout: Optional[float] = None
    description: str = ""

    def method(self, name: str) -> MethodDescriptor:
        for method in self.methods:
            if method.name == name:
                return method
        raise KeyError(f"Contract '{self.name}' has no method '{name}'")

    def method_names(self) -> Tuple[str, ...]:
        return tuple(m.name for m in self.methods)

    def to_dict(self) -> Dict[str, Any]:
        """Summarize the contract as JSON-friendly data"""
        return {
            "name": self.name,
            "base_address": self.base_address,
            "description": self.description,
            "timeout": self.timeout,
            "headers": dict(self.headers),
            "methods": [
                {
                    "name": m.name,
                    "method": m.verb.value,
                    "path": m.path,
                    "result": m.result.kind.value,
                    "parameters": [
                        {"name": p.name, "binding": p.kind.value, "wire_name": p.wire_name, "required": p.required}
                        for p in m.parameters
                    ],
                }
                for m in self.methods
            ],
        }


@dataclass(frozen=True)
class RequestDescriptor:
    """Fully resolved, transport-agnostic HTTP request"""
    method: HTTPMethod
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    timeout: Optional[float] = None


class OutcomeKind(Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TRANSPORT_FAILURE = "transport_failure"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ResponseOutcome:
    """What came back from the transport for one request"""
    status: int
    body: bytes = b""
    kind: OutcomeKind = OutcomeKind.SUCCESS
    headers: Dict[str, str] = field(default_factory=dict)
    cause: Optional[BaseException] = None

    @classmethod
    def from_status(cls, status: int, body: bytes = b"", headers: Optional[Dict[str, str]] = None) -> "ResponseOutcome":
        if 200 <= status < 300:
            kind = OutcomeKind.SUCCESS
        elif 400 <= status < 500:
            kind = OutcomeKind.CLIENT_ERROR
        elif 500 <= status < 600:
            kind = OutcomeKind.SERVER_ERROR
        else:
            kind = OutcomeKind.UNEXPECTED
        return cls(status=status, body=body or b"", kind=kind, headers=dict(headers or {}))

    @classmethod
    def transport_failure(cls, cause: BaseException) -> "ResponseOutcome":
        return cls(status=0, kind=OutcomeKind.TRANSPORT_FAILURE, cause=cause)


def parse_http_method(value: Any, contract: str, method: Optional[str] = None) -> HTTPMethod:
    if isinstance(value, HTTPMethod):
        return value
    try:
        return HTTPMethod(str(value).upper())
    except ValueError:
        raise ContractDefinitionError(contract, f"unsupported HTTP method '{value}'", method) from None


__all__ = [
    "HTTPMethod",
    "BindingKind",
    "ShapeKind",
    "ResultShape",
    "ParameterBinding",
    "MethodDescriptor",
    "ContractDescriptor",
    "RequestDescriptor",
    "OutcomeKind",
    "ResponseOutcome",
    "parse_http_method",
]
