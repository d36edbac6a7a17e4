"""Single-category review: one prompt, one completion, one CategoryResult.

Each call sees exactly one category's rules, and every finding parsed from
the answer is assigned to that category.
"""

from __future__ import annotations

import logging
import threading

from biceplens_core.errors import TransportError
from biceplens_core.models import (
    SEVERITY_LABELS,
    Category,
    CategoryResult,
    CategoryStatus,
    ExampleSnippet,
    ResultState,
    SourceFile,
)
from biceplens_core.parsing import parse_findings
from biceplens_core.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

NO_ISSUES_ANSWER = "NO ISSUES FOUND"


def _severity_scale() -> str:
    return "\n".join(f"  {level} = {label}" for level, label in SEVERITY_LABELS.items())


def build_system_prompt() -> str:
    return (
        "You are a strict and precise Azure Bicep code reviewer. "
        "You review one best-practice category at a time and report every violation "
        "with a severity from 1 to 5 and its impact."
    )


def build_user_prompt(
    category: Category,
    rule_text: str,
    source: SourceFile,
    examples: list[ExampleSnippet],
    max_chars: int | None = None,
) -> str:
    """Build the per-category prompt.

    Only ``rule_text`` for this category is included. Examples are optional
    reference material and are labelled as such so the model does not review them.
    """
    content = source.content
    if max_chars and len(content) > max_chars:
        content = content[:max_chars] + "\n// ... [file truncated]"

    if examples:
        example_section = "\n\n".join(f"// Example {e.id}\n{e.content}" for e in examples)
        example_section = f"""
## Reference Examples (well-written Bicep, do not review these)
{example_section}
"""
    else:
        example_section = ""

    return f"""Review the Bicep file `{source.identity}` for the category '{category.value}' ONLY.
Ignore problems that belong to other categories; they are reviewed separately.

## Best Practices: {category.value}
{rule_text}
{example_section}
## Code
{content}

### Severity scale:
{_severity_scale()}

### Output Format:
For each issue, write one block exactly like this and separate blocks with a line containing ---

Finding: <one or two sentences describing the violation, naming the parameter/variable/resource>
Severity: <integer 1-5>
Impact: <what goes wrong if this is not fixed>
---

Report each issue once. If the file follows every practice in this category, answer exactly:
{NO_ISSUES_ANSWER}"""


class CategoryReviewer:
    """Reviews one category of one file against a completion provider."""

    def __init__(self, provider, policy: RetryPolicy | None = None, max_chars: int | None = None):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self.max_chars = max_chars

    def review(
        self,
        category: Category,
        rule_text: str,
        source: SourceFile,
        examples: list[ExampleSnippet] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CategoryResult:
        """Return the CategoryResult for ``category``.

        Exhausted retries and malformed requests become a FAILED result.
        Authentication failures and cancellation are raised: the first is
        fatal for the whole run, the second is handled by the orchestrator.
        """
        system = build_system_prompt()
        user = build_user_prompt(category, rule_text, source, examples or [], self.max_chars)
        description = f"{self.provider.name} review of {source.identity} [{category.value}]"

        try:
            raw = call_with_retry(
                lambda: self.provider.complete(system, user),
                self.policy,
                description,
                cancel_event,
            )
        except TransportError as e:
            if e.is_auth_failure:
                raise
            logger.error("%s failed: %s", description, e)
            return CategoryResult(category=category, status=CategoryStatus.failed(str(e)))

        outcome = parse_findings(raw, category)
        if outcome.state is ResultState.DEGRADED:
            return CategoryResult(
                category=category,
                findings=outcome.findings,
                status=CategoryStatus.degraded(outcome.reason or "partially parsed"),
            )
        return CategoryResult(category=category, findings=outcome.findings)
