"""Turn one free-form completion into validated Findings.

The completion is untrusted input. The prompt asks for repeated blocks::

    Finding: <what is wrong>
    Severity: <1-5>
    Impact: <why it matters>
    ---

but models add prose around the blocks, bold the labels, number the items,
spell severities as words, answer in JSON, or drop the impact line. The
parser accepts all of that. A block it cannot use is dropped on its own and
downgrades the result to DEGRADED; it never invalidates the other blocks.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from biceplens_core.errors import ParseError
from biceplens_core.models import MAX_SEVERITY, MIN_SEVERITY, Category, Finding, ResultState

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(
    r"^[\s>#*_\-\d.)]*"
    r"(?P<label>finding|issue|severity(?:\s+level)?|impact)\b"
    r"[\s*_]*[:\-–—][\s*_]*"
    r"(?P<value>.*)$",
    re.IGNORECASE,
)
_SEPARATOR_RE = re.compile(r"^\s*(?:-{3,}|\*{3,}|_{3,}|={3,})\s*$")
_TITLE_RE = re.compile(r"^\s*(?:#{1,6}\s+(?:\d+[.)]\s*)?|\d+[.)]\s+)(?P<title>.+)$")
_NO_ISSUES_RE = re.compile(
    r"\bno\s+(?:\w+\s+)?(?:issues?|findings?|problems?|violations?)\s+(?:were\s+|was\s+)?"
    r"(?:found|detected|identified|reported)\b",
    re.IGNORECASE,
)
_INT_RE = re.compile(r"(?<![\d.])(-?\d+)(?![\d.])")

_SEVERITY_WORDS = {
    "critical": 5,
    "serious": 4,
    "high": 4,
    "important": 3,
    "medium": 3,
    "moderate": 3,
    "minor": 2,
    "low": 2,
    "suggestion": 1,
    "info": 1,
    "informational": 1,
}
_SEVERITY_WORD_RE = re.compile(r"\b(" + "|".join(_SEVERITY_WORDS) + r")\b", re.IGNORECASE)
# The value a severity field opens with, after an optional "Severity" label.
_LEADING_SEVERITY_RE = re.compile(
    r"^[^\w-]*(?:severity\b[^\w-]*)?(?:(?P<number>-?\d+)(?![\d.])|(?P<word>[a-z]+)\b)", re.IGNORECASE
)

_LABEL_FIELDS = {"finding": "description", "issue": "description", "impact": "impact"}


@dataclass
class ParseOutcome:
    findings: list[Finding] = field(default_factory=list)
    state: ResultState = ResultState.OK
    dropped: list[ParseError] = field(default_factory=list)

    @property
    def reason(self) -> str | None:
        if not self.dropped:
            return None
        return "; ".join(str(e) for e in self.dropped)


def parse_severity(raw) -> int | None:
    """Return a severity in [1, 5] or None if ``raw`` holds no usable severity."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            return None
        value = int(raw)
    else:
        text = str(raw).strip()
        lead = _LEADING_SEVERITY_RE.match(text)
        number = _INT_RE.search(text)
        if lead and lead.group("number"):
            value = int(lead.group("number"))
        elif lead and (lead.group("word") or "").lower() in _SEVERITY_WORDS:
            value = _SEVERITY_WORDS[lead.group("word").lower()]
        elif number:
            value = int(number.group(1))
        else:
            word = _SEVERITY_WORD_RE.search(text)
            if not word:
                return None
            value = _SEVERITY_WORDS[word.group(1).lower()]
    if not MIN_SEVERITY <= value <= MAX_SEVERITY:
        return None
    return value


def _strip_code_fence(text: str) -> str:
    # Strip only an outer ```json ... ``` fence, not backticks inside values.
    cleaned = re.sub(r"^```(?:json|JSON)?\s*", "", text.strip())
    return re.sub(r"\s*```$", "", cleaned.strip())


def _clean(text: str) -> str:
    text = re.sub(r"\s+", " ", text or "").strip()
    return text.strip("*_ ").strip()


def _json_candidates(text: str) -> list | None:
    """Return raw candidates when the completion is JSON, or None to fall back to block parsing."""
    cleaned = _strip_code_fence(text)
    if not cleaned.startswith(("{", "[")):
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict):
        data = data.get("findings")
    if not isinstance(data, list):
        return None

    candidates = []
    for item in data:
        if not isinstance(item, dict):
            candidates.append({"_invalid": f"expected an object, got {type(item).__name__}"})
            continue
        candidates.append(
            {
                "description": item.get("finding") or item.get("description") or item.get("issue"),
                "severity": item.get("severity"),
                "impact": item.get("impact"),
            }
        )
    return candidates


def _block_candidates(text: str) -> list[dict]:
    """Scan labelled blocks. A block opens at a Finding/Issue label, or at a
    Severity label when the open block already has one (heading-style answers
    whose numbered title line stands in for the Finding label)."""
    blocks: list[dict] = []
    current: dict | None = None
    current_field: str | None = None
    pending_title: str | None = None

    for line in text.splitlines():
        if _SEPARATOR_RE.match(line):
            current, current_field = None, None
            continue

        match = _FIELD_RE.match(line)
        if match:
            label = match.group("label").lower()
            key = "severity" if label.startswith("severity") else _LABEL_FIELDS[label]
            if key == "description" or current is None or key in current:
                current = {}
                blocks.append(current)
                if key != "description" and pending_title:
                    current["description"] = pending_title
            current[key] = match.group("value")
            current_field = key
            pending_title = None
            continue

        if not line.strip():
            if current_field and current is not None and current.get(current_field, "").strip():
                current_field = None
            continue

        title = _TITLE_RE.match(line)
        if title:
            current_field = None
            if current is not None and "severity" in current:
                current = None
            pending_title = _clean(title.group("title"))
            continue

        if current_field and current is not None:
            current[current_field] = f"{current[current_field]} {line.strip()}"
        else:
            pending_title = _clean(line)

    return blocks


def _to_finding(candidate: dict, category: Category) -> Finding:
    if "_invalid" in candidate:
        raise ParseError(candidate["_invalid"])
    description = _clean(str(candidate.get("description") or ""))
    if not description:
        raise ParseError("candidate has no finding text")
    raw_severity = candidate.get("severity")
    if raw_severity is None or (isinstance(raw_severity, str) and not raw_severity.strip()):
        raise ParseError(f"no severity token for {description[:60]!r}")
    severity = parse_severity(raw_severity)
    if severity is None:
        raise ParseError(f"unusable severity {str(raw_severity).strip()[:20]!r} for {description[:60]!r}")
    return Finding(
        category=category,
        description=description,
        severity=severity,
        impact=_clean(str(candidate.get("impact") or "")),
    )


def parse_findings(raw: str, category: Category) -> ParseOutcome:
    """Parse one category's completion into a ParseOutcome.

    OK: every detected candidate produced a Finding, or the model answered
    explicitly that there are no issues. DEGRADED: some candidates were
    dropped, or the answer was non-empty but held no recognizable finding.
    """
    text = (raw or "").strip()
    if not text:
        return ParseOutcome(state=ResultState.DEGRADED, dropped=[ParseError("empty completion")])

    candidates = _json_candidates(text)
    # A well-formed JSON array is an explicit answer even when it is empty.
    structured = candidates is not None
    if candidates is None:
        candidates = _block_candidates(text)

    outcome = ParseOutcome()
    for candidate in candidates:
        try:
            outcome.findings.append(_to_finding(candidate, category))
        except ParseError as e:
            logger.warning("%s: dropped finding candidate: %s", category.value, e)
            outcome.dropped.append(e)

    if not candidates and not structured and not _NO_ISSUES_RE.search(text):
        logger.warning("%s: completion contained no recognizable findings: %s", category.value, text[:200])
        outcome.dropped.append(ParseError("no recognizable findings in completion"))

    if outcome.dropped:
        outcome.state = ResultState.DEGRADED
    return outcome
