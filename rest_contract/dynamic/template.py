"""URL template expansion for `{placeholder}` tokens."""

import re
from typing import Mapping, Tuple

from .errors import UnresolvedPlaceholderError

PLACEHOLDER = re.compile(r"\{([^{}/?&=]+)\}")


def placeholders(template: str) -> Tuple[str, ...]:
    """Return placeholder names in order of first appearance"""
    seen = []
    for name in PLACEHOLDER.findall(template or ""):
        if name not in seen:
            seen.append(name)
    return tuple(seen)


def expand(template: str, named_values: Mapping[str, object]) -> str:
    """Replace every `{name}` token with its value in a single pass

    Substituted text is never scanned again, so a value that itself looks
    like `{other}` ends up in the result verbatim.

    Raises:
        UnresolvedPlaceholderError: If any token has no value
    """
    missing = [name for name in placeholders(template) if name not in named_values]
    if missing:
        raise UnresolvedPlaceholderError(template, missing)
    return PLACEHOLDER.sub(lambda match: str(named_values[match.group(1)]), template)


def join_url(base: str, path: str) -> str:
    if not path:
        return base
    if not base:
        return path
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


__all__ = [
    "placeholders",
    "expand",
    "join_url",
]
