"""
Form definition comparison.

Decides how an incoming form relates to a local copy. The reconciler
branches on the result, so the categories must stay distinct: "no newer
information" (EARLIER_VERSION, MISSING_VERSION), "same content" (IDENTICAL),
"compatible update" (NEWER_VERSION) and "conflict" (DIFFERENT).
"""

import logging

from ..core.models import ComparisonResult
from .parser import ParsedForm


logger = logging.getLogger(__name__)


def compare_versions(incoming: str, existing: str) -> int:
    """
    Compare two version strings.

    Purely numeric versions (the usual yyyymmddrr style) compare as integers,
    anything else compares lexically.

    Returns:
        Negative if incoming is older, zero if equal, positive if newer
    """
    if incoming.isdigit() and existing.isdigit():
        a, b = int(incoming), int(existing)
    else:
        a, b = incoming, existing
    return (a > b) - (a < b)


def is_schema_compatible(incoming: ParsedForm, existing: ParsedForm) -> bool:
    """
    True if every field of the existing data model survives in the incoming
    one with the same type and repeat status. Added fields are allowed.
    """
    incoming_fields = incoming.field_signature()
    for fqn, signature in existing.field_signature().items():
        if incoming_fields.get(fqn) != signature:
            logger.debug(f"Field {fqn!r} changed: {signature} -> {incoming_fields.get(fqn)}")
            return False
    return True


def compare_forms(incoming: ParsedForm, existing: ParsedForm) -> ComparisonResult:
    """
    Compare an incoming form definition against an existing one.

    Args:
        incoming: The freshly downloaded form
        existing: The local copy

    Returns:
        ComparisonResult
    """
    if incoming.form_id != existing.form_id:
        return ComparisonResult.DIFFERENT

    if incoming.version is None and existing.version is not None:
        return ComparisonResult.MISSING_VERSION
    if incoming.version is not None and existing.version is not None:
        if compare_versions(incoming.version, existing.version) < 0:
            return ComparisonResult.EARLIER_VERSION

    if incoming.canonical_xml == existing.canonical_xml:
        return ComparisonResult.IDENTICAL

    # Same version (or both unversioned) but different content
    if incoming.version == existing.version:
        return ComparisonResult.DIFFERENT

    if is_schema_compatible(incoming, existing):
        return ComparisonResult.NEWER_VERSION
    return ComparisonResult.DIFFERENT
