"""Contract authoring and description.

A contract is either a class decorated with `@service` whose methods carry
one verb decorator each, or a configuration dictionary. Both are turned
into the same immutable `ContractDescriptor` by `describe`.

    @service("https://svc.example/api", headers={"X-Client": "billing"})
    class Customers:
        @get("customers/{marketId}")
        async def get_customer(self, marketId: int) -> Customer: ...

        @post("customers")
        async def create(self, customer: Customer,
                         trace: Annotated[str, Header("X-Trace")] = None) -> Customer: ...
"""

import collections.abc
import inspect
import logging
import threading
import typing
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ContractDefinitionError
from .models import (
    BindingKind,
    ContractDescriptor,
    HTTPMethod,
    MethodDescriptor,
    ParameterBinding,
    ResultShape,
    ShapeKind,
    parse_http_method,
)
from .template import join_url, placeholders

SERVICE_ATTR = "__rest_service__"
ENDPOINT_ATTR = "__rest_endpoints__"

SIMPLE_TYPES = (str, int, float, bool, datetime, date)
SEQUENCE_ORIGINS = (list, tuple, set, frozenset)

CONFIG_TYPES = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "object": dict,
    "array": list,
}
QUERY_STYLES = ("multi", "csv")
# Attribute names a DispatchProxy already uses for itself
RESERVED_METHOD_NAMES = ("describe", "invoke", "with_options")


# ---------------------------------------------------------------------------
# Parameter markers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Param:
    """Explicit binding for a parameter, used inside `typing.Annotated`

    Args:
        name: Wire name (query key, header or cookie name, path placeholder)
        style: Serialization hint, "multi" or "csv" for query sequences
        description: Free text used for tool documentation
    """
    kind: ClassVar[BindingKind]
    name: Optional[str] = None
    style: Optional[str] = None
    description: str = ""


class Path(Param):
    kind = BindingKind.PATH


class Query(Param):
    kind = BindingKind.QUERY


class Body(Param):
    kind = BindingKind.BODY


class Header(Param):
    kind = BindingKind.HEADER


class Cookie(Param):
    kind = BindingKind.COOKIE


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceInfo:
    base_address: str
    name: Optional[str] = None
    headers: Optional[Mapping[str, str]] = None
    cookies: Optional[Mapping[str, str]] = None
    variables: Optional[Mapping[str, Any]] = None
    timeout: Optional[float] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class EndpointInfo:
    verb: HTTPMethod
    path: str
    headers: Optional[Mapping[str, str]] = None
    cookies: Optional[Mapping[str, str]] = None
    timeout: Optional[float] = None
    base_address: Optional[str] = None
    description: Optional[str] = None


def service(base_address: str, *, name: str = None, headers: Mapping[str, str] = None,
            cookies: Mapping[str, str] = None, variables: Mapping[str, Any] = None,
            timeout: float = None, description: str = None):
    """Mark a class as a service contract with its service-scoped settings"""
    info = ServiceInfo(base_address, name, headers, cookies, variables, timeout, description)

    def decorator(cls):
        setattr(cls, SERVICE_ATTR, info)
        return cls
    return decorator


def endpoint(verb: HTTPMethod, path: str = "", *, headers: Mapping[str, str] = None,
             cookies: Mapping[str, str] = None, timeout: float = None,
             base_address: str = None, description: str = None):
    """Attach routing metadata and method-scoped settings to a contract method"""
    info = EndpointInfo(HTTPMethod(verb), path, headers, cookies, timeout, base_address, description)

    def decorator(func):
        setattr(func, ENDPOINT_ATTR, getattr(func, ENDPOINT_ATTR, ()) + (info,))
        return func
    return decorator


def get(path: str = "", **kwargs):
    return endpoint(HTTPMethod.GET, path, **kwargs)


def post(path: str = "", **kwargs):
    return endpoint(HTTPMethod.POST, path, **kwargs)


def put(path: str = "", **kwargs):
    return endpoint(HTTPMethod.PUT, path, **kwargs)


def delete(path: str = "", **kwargs):
    return endpoint(HTTPMethod.DELETE, path, **kwargs)


def patch(path: str = "", **kwargs):
    return endpoint(HTTPMethod.PATCH, path, **kwargs)


def head(path: str = "", **kwargs):
    return endpoint(HTTPMethod.HEAD, path, **kwargs)


def options(path: str = "", **kwargs):
    return endpoint(HTTPMethod.OPTIONS, path, **kwargs)


# ---------------------------------------------------------------------------
# Type helpers
# ---------------------------------------------------------------------------

def _unwrap_optional(tp: Any) -> Any:
    if typing.get_origin(tp) is Union:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def is_simple_type(tp: Any) -> bool:
    """Scalars (and sequences of scalars) that fit in a query string"""
    tp = _unwrap_optional(tp)
    if tp is Any or tp is inspect.Parameter.empty or tp in SEQUENCE_ORIGINS:
        return True
    if isinstance(tp, type) and (issubclass(tp, SIMPLE_TYPES) or issubclass(tp, Enum)):
        return True
    if typing.get_origin(tp) in SEQUENCE_ORIGINS:
        args = typing.get_args(tp)
        return all(a is Ellipsis or is_simple_type(a) for a in args)
    return False


def result_shape(annotation: Any) -> ResultShape:
    if annotation is None or annotation is type(None):
        return ResultShape.void()
    if annotation is inspect.Signature.empty:
        return ResultShape(ShapeKind.ENTITY, Any)
    origin = typing.get_origin(annotation)
    if origin in (list, tuple, collections.abc.Sequence):
        args = typing.get_args(annotation)
        return ResultShape(ShapeKind.SEQUENCE, args[0] if args else Any)
    if annotation in (list, tuple):
        return ResultShape(ShapeKind.SEQUENCE, Any)
    return ResultShape(ShapeKind.ENTITY, annotation)


def _pairs(mapping: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, str], ...]:
    return tuple((str(k), str(v)) for k, v in (mapping or {}).items())


def _check_timeout(timeout: Any, contract: str, method: Optional[str] = None) -> Optional[float]:
    if timeout is None:
        return None
    try:
        value = float(timeout)
    except (TypeError, ValueError):
        raise ContractDefinitionError(contract, f"timeout must be a number, got {timeout!r}", method) from None
    if value <= 0:
        raise ContractDefinitionError(contract, f"timeout must be positive, got {timeout!r}", method)
    return value


def _default_wire_name(name: str, kind: BindingKind) -> str:
    if kind is BindingKind.HEADER:
        return name.replace("_", "-")
    return name


def _default_kind(verb: HTTPMethod, name: str, annotation: Any, template_names: Tuple[str, ...],
                  contract: str, method: str) -> BindingKind:
    if name in template_names:
        return BindingKind.PATH
    simple = is_simple_type(annotation)
    if verb.carries_body and not simple:
        return BindingKind.BODY
    if simple:
        return BindingKind.QUERY
    raise ContractDefinitionError(
        contract,
        f"parameter '{name}' is not a simple type and {verb.value} requests have no default body; "
        "declare an explicit binding",
        method,
    )


def _finish_method(contract: str, contract_base: str, name: str, verb: HTTPMethod, path: str,
                   bindings: List[ParameterBinding], **settings: Any) -> MethodDescriptor:
    """Validate bindings against the combined template and build the descriptor"""
    if name in RESERVED_METHOD_NAMES:
        raise ContractDefinitionError(contract, f"method name '{name}' is reserved by the dispatch proxy", name)

    bodies = [b for b in bindings if b.kind is BindingKind.BODY]
    if len(bodies) > 1:
        names = ", ".join(b.name for b in bodies)
        raise ContractDefinitionError(contract, f"more than one body parameter ({names})", name)

    for b in bindings:
        if b.style is not None and b.style not in QUERY_STYLES:
            raise ContractDefinitionError(contract, f"unknown style '{b.style}' for parameter '{b.name}'", name)

    template = join_url(settings.get("base_address") or contract_base, path)
    template_names = placeholders(template)
    bound = []
    for b in bindings:
        if b.kind is not BindingKind.PATH:
            continue
        if b.wire_name not in template_names:
            raise ContractDefinitionError(
                contract, f"path parameter '{b.name}' has no '{{{b.wire_name}}}' placeholder in '{template}'", name
            )
        if b.wire_name in bound:
            raise ContractDefinitionError(contract, f"placeholder '{{{b.wire_name}}}' is bound twice", name)
        bound.append(b.wire_name)

    return MethodDescriptor(
        name=name,
        verb=verb,
        path=path,
        parameters=tuple(bindings),
        config_placeholders=tuple(n for n in template_names if n not in bound),
        **settings,
    )


# ---------------------------------------------------------------------------
# Class contracts
# ---------------------------------------------------------------------------

def _contract_functions(cls: type) -> List[Tuple[str, Any]]:
    """Public functions of a contract class in definition order"""
    found: Dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for attr, value in vars(klass).items():
            if attr.startswith("_"):
                continue
            if isinstance(value, (staticmethod, classmethod)):
                value = value.__func__
            if inspect.isfunction(value):
                found[attr] = value
            elif attr in found:
                del found[attr]
    return list(found.items())


def _describe_function(contract: str, base_address: str, attr: str, func: Any) -> MethodDescriptor:
    endpoints = getattr(func, ENDPOINT_ATTR, ())
    if not endpoints:
        raise ContractDefinitionError(contract, "public method has no HTTP method decorator", attr)
    if len(endpoints) > 1:
        verbs = ", ".join(e.verb.value for e in endpoints)
        raise ContractDefinitionError(contract, f"declares more than one HTTP method ({verbs})", attr)
    info = endpoints[0]

    try:
        signature = inspect.signature(func, eval_str=True)
    except Exception as e:
        raise ContractDefinitionError(contract, f"cannot resolve annotations: {e}", attr) from e

    template_names = placeholders(join_url(info.base_address or base_address, info.path))
    params = list(signature.parameters.values())
    if params and params[0].name in ("self", "cls"):
        params = params[1:]

    bindings = []
    for position, param in enumerate(params):
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise ContractDefinitionError(contract, f"variadic parameter '{param.name}' is not supported", attr)

        annotation = Any if param.annotation is inspect.Parameter.empty else param.annotation
        markers = []
        if typing.get_origin(annotation) is typing.Annotated:
            markers = [m for m in annotation.__metadata__ if isinstance(m, Param)]
            annotation = typing.get_args(annotation)[0]
        if len(markers) > 1:
            raise ContractDefinitionError(contract, f"parameter '{param.name}' has more than one binding", attr)

        if markers:
            marker = markers[0]
            kind = marker.kind
            wire_name = marker.name or _default_wire_name(param.name, kind)
            style, description = marker.style, marker.description
        else:
            kind = _default_kind(info.verb, param.name, annotation, template_names, contract, attr)
            wire_name, style, description = _default_wire_name(param.name, kind), None, ""

        required = param.default is inspect.Parameter.empty
        bindings.append(ParameterBinding(
            name=param.name,
            kind=kind,
            position=position,
            wire_name=wire_name,
            annotation=annotation,
            required=required,
            default=None if required else param.default,
            style=style,
            description=description,
        ))

    return _finish_method(
        contract, base_address, attr, info.verb, info.path, bindings,
        result=result_shape(signature.return_annotation),
        headers=_pairs(info.headers),
        cookies=_pairs(info.cookies),
        timeout=_check_timeout(info.timeout, contract, attr),
        base_address=info.base_address,
        description=info.description or inspect.getdoc(func) or "",
    )


def _describe_class(cls: type) -> ContractDescriptor:
    info = getattr(cls, SERVICE_ATTR, None)
    name = cls.__name__
    if info is None:
        raise ContractDefinitionError(name, "missing @service declaration")
    name = info.name or name
    if not info.base_address or not str(info.base_address).strip():
        raise ContractDefinitionError(name, "base address template is empty")

    methods = tuple(
        _describe_function(name, info.base_address, attr, func)
        for attr, func in _contract_functions(cls)
    )
    return ContractDescriptor(
        name=name,
        base_address=info.base_address,
        methods=methods,
        headers=_pairs(info.headers),
        cookies=_pairs(info.cookies),
        variables=_pairs(info.variables),
        timeout=_check_timeout(info.timeout, name),
        description=info.description or inspect.getdoc(cls) or "",
    )


# ---------------------------------------------------------------------------
# Config contracts
# ---------------------------------------------------------------------------

def _config_parameter(contract: str, method: str, verb: HTTPMethod, position: int,
                      config: Mapping[str, Any], template_names: Tuple[str, ...]) -> ParameterBinding:
    try:
        name = config["name"]
    except KeyError:
        raise ContractDefinitionError(contract, f"parameter #{position} has no name", method) from None
    if not str(name).isidentifier():
        raise ContractDefinitionError(contract, f"parameter name '{name}' is not a valid identifier", method)

    type_name = config.get("type", "string")
    if type_name not in CONFIG_TYPES:
        raise ContractDefinitionError(contract, f"unknown type '{type_name}' for parameter '{name}'", method)
    annotation = CONFIG_TYPES[type_name]

    if config.get("binding"):
        try:
            kind = BindingKind(str(config["binding"]).lower())
        except ValueError:
            raise ContractDefinitionError(
                contract, f"unknown binding '{config['binding']}' for parameter '{name}'", method
            ) from None
    else:
        kind = _default_kind(verb, name, annotation, template_names, contract, method)

    required = bool(config.get("required", True))
    return ParameterBinding(
        name=name,
        kind=kind,
        position=position,
        wire_name=config.get("wire_name") or _default_wire_name(name, kind),
        annotation=annotation,
        required=required,
        default=config.get("default"),
        style=config.get("style"),
        description=config.get("description", ""),
    )


def _config_method(contract: str, base_address: str, config: Mapping[str, Any]) -> MethodDescriptor:
    try:
        name = config["name"]
    except KeyError:
        raise ContractDefinitionError(contract, "method entry has no name") from None
    if not str(name).isidentifier():
        raise ContractDefinitionError(contract, "method name is not a valid identifier", name)
    verb = parse_http_method(config.get("method", "GET"), contract, name)
    path = config.get("path", config.get("url", ""))

    result = config.get("result", "entity")
    try:
        kind = ShapeKind(str(result).lower())
    except ValueError:
        raise ContractDefinitionError(contract, f"unknown result kind '{result}'", name) from None
    shape = ResultShape.void() if kind is ShapeKind.VOID else ResultShape(kind, Any)

    method_base = config.get("base_address")
    template_names = placeholders(join_url(method_base or base_address, path))
    bindings = [
        _config_parameter(contract, name, verb, position, param, template_names)
        for position, param in enumerate(config.get("parameters", []))
    ]
    return _finish_method(
        contract, base_address, name, verb, path, bindings,
        result=shape,
        headers=_pairs(config.get("headers")),
        cookies=_pairs(config.get("cookies")),
        timeout=_check_timeout(config.get("timeout"), contract, name),
        base_address=method_base,
        description=config.get("description", ""),
    )


def describe_config(config: Mapping[str, Any]) -> ContractDescriptor:
    """Build a descriptor from a configuration dictionary

    Raises:
        ContractDefinitionError: If the configuration is incomplete or invalid
    """
    name = config.get("name")
    if not name:
        raise ContractDefinitionError("<unnamed>", "contract configuration has no name")
    base_address = config.get("base_address") or config.get("url")
    if not base_address or not str(base_address).strip():
        raise ContractDefinitionError(name, "base address template is empty")

    methods = tuple(_config_method(name, base_address, m) for m in config.get("methods", []))
    seen = set()
    for method in methods:
        if method.name in seen:
            raise ContractDefinitionError(name, "duplicate method name", method.name)
        seen.add(method.name)

    descriptor = ContractDescriptor(
        name=name,
        base_address=base_address,
        methods=methods,
        headers=_pairs(config.get("headers")),
        cookies=_pairs(config.get("cookies")),
        variables=_pairs(config.get("variables")),
        timeout=_check_timeout(config.get("timeout"), name),
        description=config.get("description", ""),
    )
    logging.info(f"[Contract] Described config contract '{name}' with {len(methods)} method(s)")
    return descriptor


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------

_descriptors: Dict[type, ContractDescriptor] = {}
_descriptors_lock = threading.Lock()


def describe(contract: Any) -> ContractDescriptor:
    """Return the descriptor for a contract class, config dict or descriptor

    Class descriptors are built once and cached for the process lifetime.

    Raises:
        ContractDefinitionError: If the contract metadata is malformed
    """
    if isinstance(contract, ContractDescriptor):
        return contract
    if isinstance(contract, Mapping):
        return describe_config(contract)
    if not isinstance(contract, type):
        raise TypeError(f"Cannot describe {contract!r}: expected a contract class or configuration mapping")

    descriptor = _descriptors.get(contract)
    if descriptor is None:
        with _descriptors_lock:
            descriptor = _descriptors.get(contract)
            if descriptor is None:
                descriptor = _describe_class(contract)
                _descriptors[contract] = descriptor
                logging.info(
                    f"[Contract] Described contract '{descriptor.name}' with {len(descriptor.methods)} method(s)"
                )
    return descriptor


__all__ = [
    "Param",
    "Path",
    "Query",
    "Body",
    "Header",
    "Cookie",
    "service",
    "endpoint",
    "get",
    "post",
    "put",
    "delete",
    "patch",
    "head",
    "options",
    "is_simple_type",
    "result_shape",
    "describe",
    "describe_config",
]
