"""Split a best-practices Markdown document into per-category rule text.

Each category is reviewed in its own completion call, so the extractor only
has to find where a category's section starts and where it ends. A section
starts at an ATX heading naming a category and runs until the next heading of
the same or a higher level, or the end of the document. Headings inside
fenced code blocks are ignored.
"""

from __future__ import annotations

import logging
import re

from biceplens_core.errors import ConfigurationError
from biceplens_core.models import BestPracticesDocument, Category

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
# Leading list numbering, emoji or punctuation: "1. ", "2) ", "- ", "📦 "
_TITLE_PREFIX_RE = re.compile(r"^[^A-Za-z]+")


def _match_category(title: str) -> Category | None:
    title = _TITLE_PREFIX_RE.sub("", title.strip()).rstrip(":").strip()
    # Reject long headings that merely start with a category word
    # ("Naming and everything else you need to know").
    if len(title.split()) > 3:
        return None
    return Category.from_name(title)


def extract_categories(text: str) -> dict[Category, str]:
    """Return a mapping of category to its rule text.

    Categories not present in the document (or present with an empty
    section) get no entry. Raises ConfigurationError when the document is
    empty or no category can be found.
    """
    if not text or not text.strip():
        raise ConfigurationError("Best practices document is empty.")

    sections: dict[Category, list[str]] = {}
    current: Category | None = None
    current_level = 0
    in_fence = False

    for line in text.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        heading = None if in_fence else _HEADING_RE.match(line)

        if heading:
            level = len(heading.group(1))
            if current is not None and level <= current_level:
                current = None
            if current is None:
                category = _match_category(heading.group(2))
                if category is not None:
                    current = category
                    current_level = level
                    sections.setdefault(category, [])
                    if sections[category]:
                        sections[category].append("")
                    continue

        if current is not None:
            sections[current].append(line)

    rules: dict[Category, str] = {}
    for category in Category:
        body = "\n".join(sections.get(category, [])).strip()
        if body:
            rules[category] = body
        elif category in sections:
            logger.warning("Best practices section %r has no rule text; skipping it.", category.value)

    if not rules:
        valid = ", ".join(c.value for c in Category)
        raise ConfigurationError(f"No review categories found in best practices document. Expected headings: {valid}.")

    logger.debug("Extracted categories: %s", ", ".join(c.value for c in rules))
    return rules


def parse_document(text: str) -> BestPracticesDocument:
    return BestPracticesDocument(text=text, rules=extract_categories(text))
