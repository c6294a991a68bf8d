"""
Reference and canonical URL helpers.

Pure string/URL functions: they parse ``Type/id`` references and
canonical URLs into descriptors, and build references and canonical
URLs from a resource type and id.  The only outside input is the
read-only :class:`ServerConfig`, consulted to decide whether an
absolute URL points at this server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

from fhir_transcode.config import ServerConfig, get_server_config
from fhir_transcode.r4._constants import CANONICAL, KNOWN_RESOURCE_TYPES, STRING, URI
from fhir_transcode.r4._primitives import Primitive
from fhir_transcode.r4._types import Reference


@dataclass(frozen=True)
class ParsedReference:
    resource_type: Optional[str] = None
    id: Optional[str] = None
    is_local: bool = False


@dataclass(frozen=True)
class ParsedCanonicalUrl:
    is_local: bool = False
    is_valid: bool = False
    resource_type: Optional[str] = None
    id: Optional[str] = None


def _is_absolute(parts) -> bool:
    return bool(parts.scheme and parts.netloc)


def _segments(path: str) -> list[str]:
    return [s for s in path.split("/") if s]


def parse_reference(
    text: Optional[str],
    *,
    config: Optional[ServerConfig] = None,
) -> ParsedReference:
    """Split a reference such as ``"Patient/123"`` into type and id.

    Relative references are local.  Absolute URLs are local when their
    host matches the configured server.  A trailing ``_history/{vid}``
    is ignored.  Text without a ``/`` has neither type nor id.

    The resource type is not checked against the known FHIR types.
    """
    if not isinstance(text, str) or not text:
        return ParsedReference()

    parts = urlsplit(text)
    if _is_absolute(parts):
        config = config or get_server_config()
        is_local = parts.hostname == config.host
        segments = _segments(parts.path)
    else:
        is_local = True
        segments = _segments(text)

    if len(segments) >= 4 and segments[-2] == "_history":
        segments = segments[:-2]
    if "/" not in text or len(segments) < 2:
        return ParsedReference(is_local=is_local)
    return ParsedReference(segments[-2], segments[-1], is_local)


def parse_canonical_url(
    url: Optional[str],
    *,
    config: Optional[ServerConfig] = None,
) -> ParsedCanonicalUrl:
    """Parse a canonical URL into ``(is_local, is_valid, type, id)``.

    When the second-to-last path segment is a known FHIR resource type
    the last two segments are ``(type, id)``.  Otherwise the last
    segment alone is taken as a root-level element name with no id.
    A ``|version`` suffix is dropped.
    """
    if not isinstance(url, str) or not url:
        return ParsedCanonicalUrl()

    parts = urlsplit(url)
    if not _is_absolute(parts):
        return ParsedCanonicalUrl()

    config = config or get_server_config()
    is_local = parts.hostname == config.host
    segments = _segments(parts.path)
    if segments:
        segments[-1] = segments[-1].split("|", 1)[0]

    if len(segments) >= 2 and segments[-2] in KNOWN_RESOURCE_TYPES:
        return ParsedCanonicalUrl(is_local, True, segments[-2], segments[-1])
    if segments and segments[-1]:
        return ParsedCanonicalUrl(is_local, True, segments[-1], None)
    return ParsedCanonicalUrl(is_local, True)


def build_relative_reference(
    resource_type: str,
    id: str,
    display: Any = None,
) -> Reference:
    """Build ``Reference(reference="{resource_type}/{id}")``.

    ``display`` is set only for a non-empty string.
    """
    return Reference(
        reference=Primitive(STRING, f"{resource_type}/{id}"),
        type=Primitive(URI, resource_type),
        display=Primitive(STRING, display) if isinstance(display, str) and display else None,
    )


def build_canonical_url(
    resource_type: str,
    id: str,
    *,
    config: Optional[ServerConfig] = None,
) -> Primitive:
    """Canonical URL of a resource hosted on this server."""
    config = config or get_server_config()
    return Primitive(CANONICAL, f"{config.fhir_url}{resource_type}/{id}")


def id_from_reference(
    reference: Optional[Reference],
    *,
    config: Optional[ServerConfig] = None,
) -> Optional[str]:
    """Id part of a Reference's ``reference`` string, if any."""
    if reference is None or reference.reference is None:
        return None
    return parse_reference(str(reference.reference.value), config=config).id
