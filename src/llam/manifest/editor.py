"""Edits to language server settings carried in the manifest.

These touch only the named lists/maps under ``diagnostics`` and ``doc``;
every other setting stays as loaded.
"""
import logging
from typing import Any, Iterable

from ..errors import ManifestError
from .diagnostics import parse_diagnostic, parse_severity
from .store import Manifest

logger = logging.getLogger(__name__)

DOC_KEYS = {
    "package": "packageName",
    "private": "privateName",
    "protected": "protectedName",
}


def _list_field(section: dict[str, Any], key: str, where: str) -> list:
    value = section.setdefault(key, [])
    if not isinstance(value, list):
        raise ManifestError(f"'{where}.{key}' must be a list")
    return value


def _extend_unique(target: list, values: Iterable[str]) -> int:
    added = 0
    for value in values:
        if value not in target:
            target.append(value)
            added += 1
    return added


def _remove_all(target: list, values: Iterable[str]) -> int:
    drop = set(values)
    kept = [item for item in target if item not in drop]
    removed = len(target) - len(kept)
    target[:] = kept
    return removed


def disable_diagnostics(manifest: Manifest, names: Iterable[str]) -> int:
    """Add diagnostics to ``diagnostics.disable``. Returns the number added."""
    codes = [parse_diagnostic(n) for n in names]
    disabled = _list_field(manifest.section("diagnostics"), "disable", "diagnostics")
    return _extend_unique(disabled, codes)


def enable_diagnostics(manifest: Manifest, names: Iterable[str]) -> int:
    """Remove diagnostics from ``diagnostics.disable``. Returns the number removed."""
    codes = [parse_diagnostic(n) for n in names]
    if "diagnostics" not in manifest.extra:
        return 0
    disabled = _list_field(manifest.section("diagnostics"), "disable", "diagnostics")
    return _remove_all(disabled, codes)


def add_globals(manifest: Manifest, names: Iterable[str]) -> int:
    declared = _list_field(manifest.section("diagnostics"), "globals", "diagnostics")
    return _extend_unique(declared, names)


def remove_globals(manifest: Manifest, names: Iterable[str]) -> int:
    if "diagnostics" not in manifest.extra:
        return 0
    declared = _list_field(manifest.section("diagnostics"), "globals", "diagnostics")
    return _remove_all(declared, names)


def set_severities(manifest: Manifest, assignments: Iterable[str]) -> dict[str, str]:
    """
    Apply ``<diagnostic>=<severity>`` assignments to ``diagnostics.severity``.

    Returns:
        The parsed assignments that were written
    """
    parsed = {}
    for assignment in assignments:
        if "=" not in assignment:
            raise ValueError("invalid set value, expected [key]=[value]")
        key, value = assignment.split("=", 1)
        parsed[parse_diagnostic(key)] = parse_severity(value)

    severity = manifest.section("diagnostics").setdefault("severity", {})
    if not isinstance(severity, dict):
        raise ManifestError("'diagnostics.severity' must be an object")
    severity.update(parsed)
    return parsed


def add_doc_patterns(manifest: Manifest, kind: str, patterns: Iterable[str]) -> int:
    """Add name patterns to ``doc.packageName`` / ``privateName`` / ``protectedName``."""
    if kind not in DOC_KEYS:
        raise ValueError(f"unknown doc setting: {kind}")
    target = _list_field(manifest.section("doc"), DOC_KEYS[kind], "doc")
    added = _extend_unique(target, patterns)
    logger.debug(f"Added {added} doc.{DOC_KEYS[kind]} pattern(s)")
    return added
