"""Assembling a RequestDescriptor from resolved configuration and bound arguments."""

from typing import Dict
from urllib.parse import quote, urlencode

from .binder import BoundParameters
from .configuration import EffectiveConfiguration, merge_headers
from .errors import SerializationError
from .models import MethodDescriptor, RequestDescriptor
from .template import expand, join_url


def template_values(config: EffectiveConfiguration, bound: BoundParameters) -> Dict[str, object]:
    """Values for URL placeholders, shared by the request URL and the pool key"""
    named_values: Dict[str, object] = dict(config.variables)
    # Path values are percent-encoded; configuration variables are inserted as-is
    named_values.update({k: quote(v, safe="") for k, v in bound.path_values.items()})
    return named_values


def build_url(base_address: str, method: MethodDescriptor, config: EffectiveConfiguration,
              bound: BoundParameters) -> str:
    url = expand(join_url(base_address, method.path), template_values(config, bound))
    if bound.query_entries:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{urlencode(bound.query_entries)}"
    return url


def synthesize(base_address: str, method: MethodDescriptor, config: EffectiveConfiguration,
               bound: BoundParameters) -> RequestDescriptor:
    """Build the request for one call without touching any of the inputs

    Raises:
        UnresolvedPlaceholderError: If a template placeholder has no value
        SerializationError: If the body cannot be serialized
    """
    url = build_url(base_address, method, config, bound)
    headers = merge_headers((config.headers.items(), bound.header_entries.items()))
    cookies = {**config.cookies, **bound.cookie_entries}

    body = None
    if bound.has_body:
        try:
            body = config.serializer.serialize(bound.body)
        except Exception as e:
            raise SerializationError(e) from e
        if not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = config.serializer.content_type

    return RequestDescriptor(
        method=method.verb,
        url=url,
        headers=headers,
        cookies=cookies,
        body=body,
        timeout=config.timeout,
    )


__all__ = [
    "template_values",
    "build_url",
    "synthesize",
]
