"""Device profiles and their canonical cache keys."""

from __future__ import annotations

import json
import urllib.parse
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

DEFAULT_DEVICE = "Desktop Chrome"

# Descriptor fields that pick a browser rather than configure a context.
_NON_CONTEXT_KEYS = frozenset({"default_browser_type"})


def resolve_device_profile(catalog: Mapping[str, Mapping[str, Any]], name: str | None) -> Mapping[str, Any]:
    """Look up a named device, falling back to ``DEFAULT_DEVICE``."""

    descriptor = None
    if name:
        descriptor = catalog.get(urllib.parse.unquote(name))
    if descriptor is None:
        descriptor = catalog.get(DEFAULT_DEVICE, {})
    return MappingProxyType({k: v for k, v in descriptor.items() if k not in _NON_CONTEXT_KEYS})


def profile_key(profile: Mapping[str, Any]) -> str:
    """Order-independent string identifying a device profile."""

    return json.dumps(dict(profile), sort_keys=True, separators=(",", ":"), default=_jsonable)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


__all__ = ["DEFAULT_DEVICE", "profile_key", "resolve_device_profile"]
