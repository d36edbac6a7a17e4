"""Deduplicate, threshold and order findings."""

from __future__ import annotations

import re

from biceplens_core.models import MIN_SEVERITY, Finding

_MARKUP_RE = re.compile(r"[`*_]")
_SPACE_RE = re.compile(r"\s+")


def normalize_description(text: str) -> str:
    """Comparison form of a finding's text: no markup, single spaces, lower case, no trailing punctuation."""
    text = _MARKUP_RE.sub("", text or "")
    text = _SPACE_RE.sub(" ", text).strip().lower()
    return text.rstrip(".;:! ")


def finding_key(finding: Finding) -> tuple:
    return (finding.category, normalize_description(finding.description))


def deduplicate(findings: list[Finding]) -> list[Finding]:
    """Drop findings repeating an earlier (category, description) pair.

    The surviving entry keeps the position of the first occurrence but takes
    the highest severity seen (with that duplicate's impact text).
    """
    positions: dict[tuple, int] = {}
    result: list[Finding] = []
    for finding in findings:
        key = finding_key(finding)
        index = positions.get(key)
        if index is None:
            positions[key] = len(result)
            result.append(finding)
        elif finding.severity > result[index].severity:
            result[index] = finding
    return result


def filter_findings(raw: list[Finding], minimum_severity: int = MIN_SEVERITY) -> list[Finding]:
    """Deduplicate, keep severity >= minimum_severity, and sort.

    Order: descending severity, then fixed category order, then detection
    order, so identical input always renders identically.
    """
    kept = [(i, f) for i, f in enumerate(deduplicate(raw)) if f.severity >= minimum_severity]
    kept.sort(key=lambda item: (-item[1].severity, item[1].category.order, item[0]))
    return [f for _, f in kept]


def order_for_report(raw: list[Finding]) -> list[Finding]:
    """Deduplicate and order by fixed category order, then descending severity, then detection order."""
    indexed = list(enumerate(deduplicate(raw)))
    indexed.sort(key=lambda item: (item[1].category.order, -item[1].severity, item[0]))
    return [f for _, f in indexed]
