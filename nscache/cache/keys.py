"""Cache key derivation.

Physical Redis keys are ``"{namespace}::{key}"``. ``None`` on either side
is treated as the empty string, so ``cache_key(None, None) == "::"``.
Callers that embed ``::`` in their own names can collide across the
boundary; that is accepted.
"""

import re
from typing import Any

SEPARATOR = "::"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def cache_key(namespace: Any, key: Any) -> str:
    """Build the physical Redis key for ``key`` in ``namespace``.

    Example:
        >>> cache_key("a", "b")
        'a::b'
    """
    return f"{_as_str(namespace)}{SEPARATOR}{_as_str(key)}"


def namespace_prefix(namespace: Any) -> str:
    """Prefix shared by every key in ``namespace``."""
    return cache_key(namespace, "")


def key_pattern(namespace: Any) -> str:
    """Glob pattern matching every key in ``namespace`` (for ``KEYS``).

    Glob metacharacters in the namespace are escaped so a namespace such as
    ``"user*"`` only matches its own keys.
    """
    return _GLOB_SPECIAL.sub(r"\\\1", namespace_prefix(namespace)) + "*"
