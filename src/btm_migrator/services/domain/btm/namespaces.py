#!/usr/bin/env python3
"""
Namespace prefix tables for map documents.

A table maps prefix -> URI. Every URI is registered under exactly one
prefix and the empty prefix never survives: default namespaces receive a
synthesized prefix. EDI (X12/EDIFACT) namespaces always get an ``nsN``
prefix because the Logic Apps runtime expects that shape.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

XS_NAMESPACE = "http://www.w3.org/2001/XMLSchema"
XS_PREFIX = "xs"

EDI_MARKERS = ("/EDI/", "/X12/", "/EDIFACT/")
UTILITY_MARKERS = ("PropertySchema", "XMLSchema", "BizTalk/2003")

_NS_SLOT = re.compile(r"^ns(\d+)$")
_YEAR = re.compile(r"^\d{4}$")
_PREFIX_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_edi_namespace(uri: Optional[str]) -> bool:
    return bool(uri) and any(marker in uri for marker in EDI_MARKERS)


def is_utility_namespace(uri: Optional[str]) -> bool:
    """True for BizTalk property schemas, XML Schema itself and BizTalk system namespaces."""
    return bool(uri) and any(marker in uri for marker in UTILITY_MARKERS)


def ns_slot_index(prefix: str) -> Optional[int]:
    """Return N for an ``nsN`` prefix, else None."""
    match = _NS_SLOT.match(prefix or "")
    return int(match.group(1)) if match else None


def ns_slot_prefixes(namespaces: dict[str, str]) -> list[str]:
    """``nsN`` prefixes of a table in ascending numeric order."""
    slots = [prefix for prefix in namespaces if ns_slot_index(prefix) is not None]
    return sorted(slots, key=ns_slot_index)


def next_ns_slot(namespaces: dict[str, str]) -> str:
    index = 0
    while f"ns{index}" in namespaces:
        index += 1
    return f"ns{index}"


def prefix_for_uri(namespaces: dict[str, str], uri: str) -> Optional[str]:
    for prefix, value in namespaces.items():
        if value == uri:
            return prefix
    return None


def _contains_year_segment(segments: list[str]) -> bool:
    for segment in segments:
        candidate = segment.replace(".", "").replace("-", "").lower()
        if _YEAR.match(candidate) and 1990 <= int(candidate) <= 2100:
            return True
    return False


def _readable_prefix(uri: str) -> Optional[str]:
    """Derive a prefix from the last path segment of a hierarchical URI."""
    parsed = urlparse(uri)
    if not parsed.scheme or not parsed.netloc:
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments or _contains_year_segment(segments):
        return None

    candidate = segments[-1].replace(".", "").replace("-", "").lower()
    if not _PREFIX_NAME.match(candidate) or candidate.startswith("xml"):
        return None
    return candidate


def derive_namespace_prefix(uri: str, namespaces: dict[str, str]) -> str:
    """Choose the prefix a namespace URI should be registered under.

    Args:
        uri: Namespace URI needing a prefix
        namespaces: Table the prefix must be unique in (not modified)

    Returns:
        An existing prefix for the URI, or a new unused one
    """
    existing = prefix_for_uri(namespaces, uri)
    if existing is not None:
        return existing

    if is_edi_namespace(uri):
        return next_ns_slot(namespaces)

    candidate = _readable_prefix(uri)
    if candidate and candidate not in namespaces:
        return candidate

    return next_ns_slot(namespaces)


def register_namespace(namespaces: dict[str, str], uri: str) -> Optional[str]:
    """Add a URI under a derived prefix unless it is already present."""
    if not uri:
        return None
    prefix = derive_namespace_prefix(uri, namespaces)
    if prefix not in namespaces:
        namespaces[prefix] = uri
        logger.debug(f"Registered namespace {prefix}={uri}")
    return prefix


def add_declared_namespace(namespaces: dict[str, str], prefix: str, uri: str) -> None:
    """Add an explicit ``xmlns:prefix`` declaration when neither side collides."""
    if not prefix:
        register_namespace(namespaces, uri)
        return
    if prefix in namespaces or uri in namespaces.values():
        return
    namespaces[prefix] = uri


def ensure_xs_namespace(namespaces: dict[str, str]) -> None:
    """Guarantee xs -> XML Schema, moving the URI off any other prefix."""
    for prefix in [p for p, uri in namespaces.items() if uri == XS_NAMESPACE and p != XS_PREFIX]:
        del namespaces[prefix]
    if namespaces.get(XS_PREFIX) != XS_NAMESPACE:
        displaced = namespaces.get(XS_PREFIX)
        namespaces[XS_PREFIX] = XS_NAMESPACE
        if displaced:
            register_namespace(namespaces, displaced)


def drop_empty_prefix(namespaces: dict[str, str]) -> None:
    """Re-register a namespace stored under the empty prefix."""
    uri = namespaces.pop("", None)
    if uri and uri not in namespaces.values():
        register_namespace(namespaces, uri)


def preferred_prefix(namespaces: dict[str, str]) -> str:
    """Prefix used to qualify schema tree paths.

    Any ``nsN`` prefix wins (lowest N); otherwise the first prefix that is
    not a utility one; otherwise no prefix.
    """
    slots = ns_slot_prefixes(namespaces)
    if slots:
        return slots[0]
    for prefix in namespaces:
        if prefix in ("", XS_PREFIX, "b") or prefix.startswith("msdata"):
            continue
        return prefix
    return ""
