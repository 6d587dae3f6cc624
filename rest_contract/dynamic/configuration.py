"""Layered configuration for dispatched calls.

Four layers are merged for every call, most general first: global
settings, the service contract, the contract method and the call-site
options. Scalars take the last value that is set; headers, cookies and
variables are merged key by key with the more specific layer winning.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .models import ContractDescriptor, MethodDescriptor
from .serializer import DEFAULT_SERIALIZER, Serializer

DEFAULT_TIMEOUT = 30.0
ENV_PREFIX = "REST_CONTRACT_"


@dataclass(frozen=True)
class Settings:
    """One configuration layer; unset fields leave lower layers untouched"""
    base_address: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    serializer: Optional[Serializer] = None


@dataclass(frozen=True)
class GlobalSettings(Settings):
    """Process-wide defaults, usually read from the environment"""

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, environ: Optional[Mapping[str, str]] = None) -> "GlobalSettings":
        """Read global settings from environment variables

        Recognized names (with the default prefix):
            REST_CONTRACT_TIMEOUT        request timeout in seconds
            REST_CONTRACT_VAR_<NAME>     template variable <name> (lower-cased)
            REST_CONTRACT_HEADER_<NAME>  default header, underscores become dashes

        Raises:
            ValueError: If the timeout is not a positive number
        """
        environ = os.environ if environ is None else environ
        headers: Dict[str, str] = {}
        variables: Dict[str, str] = {}
        timeout = None

        for key, value in environ.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):]
            if name == "TIMEOUT":
                try:
                    timeout = float(value)
                except ValueError:
                    raise ValueError(f"{key} must be a number, got {value!r}") from None
                if timeout <= 0:
                    raise ValueError(f"{key} must be positive, got {value!r}")
            elif name.startswith("VAR_") and len(name) > 4:
                variables[name[4:].lower()] = value
            elif name.startswith("HEADER_") and len(name) > 7:
                header = "-".join(part.capitalize() for part in name[7:].split("_"))
                headers[header] = value

        if variables or headers:
            logging.info(
                f"[Configuration] Loaded {len(variables)} variable(s) and {len(headers)} header(s) from environment"
            )
        return cls(headers=headers, variables=variables, timeout=timeout)


@dataclass(frozen=True)
class CallOptions(Settings):
    """Per-call overrides plus an optional cancellation signal"""
    cancellation: Optional[asyncio.Event] = None


@dataclass(frozen=True)
class EffectiveConfiguration:
    base_address: str
    headers: Dict[str, str]
    cookies: Dict[str, str]
    variables: Dict[str, Any]
    timeout: float
    serializer: Serializer


def merge_headers(layers: Iterable[Iterable[Tuple[str, str]]]) -> Dict[str, str]:
    """Merge header layers; names compare case-insensitively, later layers win"""
    merged: Dict[str, str] = {}
    names: Dict[str, str] = {}
    for layer in layers:
        for key, value in layer:
            previous = names.get(key.lower())
            if previous is not None:
                del merged[previous]
            names[key.lower()] = key
            merged[key] = value
    return merged


def merge_mappings(layers: Iterable[Iterable[Tuple[str, Any]]]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def _last_set(values: Iterable[Any]) -> Any:
    result = None
    for value in values:
        if value is not None:
            result = value
    return result


def layer_options(base: Optional[Settings], override: Settings) -> CallOptions:
    """Layer call-site overrides on top of existing call-site options"""
    if base is None:
        base = CallOptions()
    return CallOptions(
        base_address=_last_set((base.base_address, override.base_address)),
        headers=merge_headers((base.headers.items(), override.headers.items())),
        cookies=merge_mappings((base.cookies.items(), override.cookies.items())),
        variables=merge_mappings((base.variables.items(), override.variables.items())),
        timeout=_last_set((base.timeout, override.timeout)),
        serializer=_last_set((base.serializer, override.serializer)),
        cancellation=_last_set((getattr(base, "cancellation", None), getattr(override, "cancellation", None))),
    )


def resolve(contract: ContractDescriptor, method: MethodDescriptor,
            overrides: Optional[Settings] = None,
            global_settings: Optional[Settings] = None) -> EffectiveConfiguration:
    """Merge global, service, method and call-site settings for one call

    Pure and deterministic: the same inputs always give an equal result.
    """
    global_settings = global_settings or GlobalSettings()
    overrides = overrides or Settings()

    # global < service < method < call
    base_addresses = (global_settings.base_address, contract.base_address, method.base_address, overrides.base_address)
    headers = (global_settings.headers.items(), contract.headers, method.headers, overrides.headers.items())
    cookies = (global_settings.cookies.items(), contract.cookies, method.cookies, overrides.cookies.items())
    variables = (global_settings.variables.items(), contract.variables, overrides.variables.items())
    timeouts = (global_settings.timeout, contract.timeout, method.timeout, overrides.timeout)
    serializers = (global_settings.serializer, overrides.serializer)

    return EffectiveConfiguration(
        base_address=_last_set(base_addresses),
        headers=merge_headers(headers),
        cookies=merge_mappings(cookies),
        variables=merge_mappings(variables),
        timeout=_last_set(timeouts) or DEFAULT_TIMEOUT,
        serializer=_last_set(serializers) or DEFAULT_SERIALIZER,
    )


__all__ = [
    "DEFAULT_TIMEOUT",
    "Settings",
    "GlobalSettings",
    "CallOptions",
    "EffectiveConfiguration",
    "merge_headers",
    "merge_mappings",
    "layer_options",
    "resolve",
]
