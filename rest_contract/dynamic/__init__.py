"""Declarative HTTP contract clients.

This package turns a declared service contract into a dispatch proxy whose
async methods perform the HTTP exchanges the contract describes, and can
serve every contract method as an MCP tool.
"""

from .configuration import CallOptions, EffectiveConfiguration, GlobalSettings, Settings, resolve
from .contract import (
    Body,
    Cookie,
    Header,
    Path,
    Query,
    delete,
    describe,
    describe_config,
    endpoint,
    get,
    head,
    options,
    patch,
    post,
    put,
    service,
)
from .contract_manager import ContractManager
from .core import DynamicMCPServer
from .errors import (
    ClientRequestError,
    ContractClientError,
    ContractDefinitionError,
    DeserializationError,
    PipelineStage,
    RequestCancelledError,
    ResponseStatusError,
    SerializationError,
    ServiceFailureError,
    TransportError,
    UnexpectedStatusError,
    UnresolvedPlaceholderError,
    UnsupportedParameterBindingError,
)
from .models import (
    BindingKind,
    ContractDescriptor,
    HTTPMethod,
    MethodDescriptor,
    ParameterBinding,
    RequestDescriptor,
    ResponseOutcome,
    ResultShape,
    ShapeKind,
)
from .proxy import DispatchProxy
from .serializer import JsonSerializer, Serializer
from .transport import AiohttpTransport, PoolKey, Transport, TransportPool

__all__ = [
    "service",
    "endpoint",
    "get",
    "post",
    "put",
    "delete",
    "patch",
    "head",
    "options",
    "Path",
    "Query",
    "Body",
    "Header",
    "Cookie",
    "describe",
    "describe_config",
    "Settings",
    "GlobalSettings",
    "CallOptions",
    "EffectiveConfiguration",
    "resolve",
    "ContractManager",
    "DynamicMCPServer",
    "DispatchProxy",
    "Serializer",
    "JsonSerializer",
    "Transport",
    "AiohttpTransport",
    "PoolKey",
    "TransportPool",
    "HTTPMethod",
    "BindingKind",
    "ShapeKind",
    "ResultShape",
    "ParameterBinding",
    "MethodDescriptor",
    "ContractDescriptor",
    "RequestDescriptor",
    "ResponseOutcome",
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
