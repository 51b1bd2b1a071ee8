"""
Namespace resolution between public capability names and backend-local ones.

Public names look like ``<alias>.<local-name>`` for tools and prompts and
``<alias>://<local-uri>`` for resources. The alias table maps a short alias to
a backend id; several aliases may share one backend, in which case the first
entry wins on reverse lookup. Unknown aliases fall back to ``<alias>-mcp``.

All functions are pure. Only ``resolve_backend_id`` rejects empty input,
because its callers go on to raise "backend not found".
"""

from __future__ import annotations

from collections.abc import Mapping

from mcp_aggregator.errors import InvalidNameError

BACKEND_SUFFIX = "-mcp"
NAME_SEPARATOR = "."
URI_SEPARATOR = "://"

DEFAULT_ALIASES: dict[str, str] = {
    "journey": "journey-service-mcp",
    "mobility": "swiss-mobility-mcp",
    "aareguru": "aareguru-mcp",
    "meteo": "open-meteo-mcp",
    "weather": "open-meteo-mcp",
}


def _split(namespaced: str) -> tuple[str, str] | None:
    """Split at whichever separator occurs first, or None if neither does."""
    dot = namespaced.find(NAME_SEPARATOR)
    scheme = namespaced.find(URI_SEPARATOR)

    if scheme != -1 and (dot == -1 or scheme < dot):
        return namespaced[:scheme], namespaced[scheme + len(URI_SEPARATOR) :]
    if dot != -1:
        return namespaced[:dot], namespaced[dot + len(NAME_SEPARATOR) :]
    return None


def resolve_backend_id(namespaced: str, aliases: Mapping[str, str] = DEFAULT_ALIASES) -> str:
    """Map ``journey.findTrips`` or ``journey://x`` to its backend id.

    Raises:
        InvalidNameError: If the name is empty
    """
    if not namespaced:
        raise InvalidNameError("Capability name is required")

    parts = _split(namespaced)
    prefix = parts[0] if parts else namespaced
    return aliases.get(prefix) or f"{prefix}{BACKEND_SUFFIX}"


def strip_prefix(namespaced: str) -> str:
    """Return the backend-local part; un-prefixed names pass through."""
    if not namespaced:
        return ""
    parts = _split(namespaced)
    return parts[1] if parts else namespaced


def alias_for(backend_id: str, aliases: Mapping[str, str] = DEFAULT_ALIASES) -> str:
    """Reverse lookup of a backend id to its public alias."""
    if not backend_id:
        return ""
    for alias, target in aliases.items():
        if target == backend_id:
            return alias
    return backend_id.removesuffix(BACKEND_SUFFIX)


def apply_prefix(
    backend_id: str, local_name: str, aliases: Mapping[str, str] = DEFAULT_ALIASES
) -> str:
    """Publish a tool or prompt name under its backend's alias."""
    if not backend_id or not local_name:
        return local_name or ""
    return f"{alias_for(backend_id, aliases)}{NAME_SEPARATOR}{local_name}"


def apply_resource_prefix(
    backend_id: str, local_uri: str, aliases: Mapping[str, str] = DEFAULT_ALIASES
) -> str:
    """Publish a resource URI under its backend's alias."""
    if not backend_id or not local_uri:
        return local_uri or ""
    return f"{alias_for(backend_id, aliases)}{URI_SEPARATOR}{local_uri}"
