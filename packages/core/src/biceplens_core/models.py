"""Review data model.

Everything here lives for a single invocation. The only state that survives
between runs is the set of comment threads on the remote pull request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

MIN_SEVERITY = 1
MAX_SEVERITY = 5

SEVERITY_LABELS = {
    5: "Critical",
    4: "Serious",
    3: "Important",
    2: "Minor",
    1: "Suggestion",
}


class Category(str, Enum):
    """The closed, ordered set of review dimensions."""

    PARAMETERS = "Parameters"
    VARIABLES = "Variables"
    NAMING = "Naming"
    RESOURCES = "Resources"
    OUTPUTS = "Outputs"

    @property
    def order(self) -> int:
        return _CATEGORY_ORDER[self]

    @classmethod
    def from_name(cls, name: str) -> Category | None:
        """Resolve a loosely written category name ("outputs", "Output:", "3. Naming")."""
        words = re.findall(r"[a-z]+", name.lower())
        if not words:
            return None
        word = words[0]
        for category in cls:
            canonical = category.value.lower()
            if word in (canonical, canonical.rstrip("s")):
                return category
        return None


_CATEGORY_ORDER = {category: index for index, category in enumerate(Category)}


def severity_label(severity: int) -> str:
    return f"{severity} ({SEVERITY_LABELS.get(severity, 'Unknown')})"


@dataclass(frozen=True)
class SourceFile:
    """The artifact under review. ``identity`` is the path shown to users and hashed into fingerprints."""

    identity: str
    content: str


@dataclass(frozen=True)
class ExampleSnippet:
    id: str
    content: str


@dataclass
class BestPracticesDocument:
    text: str
    rules: dict[Category, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Finding:
    category: Category
    description: str
    severity: int
    impact: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.severity, int) or isinstance(self.severity, bool):
            raise ValueError(f"severity must be an int, got {self.severity!r}")
        if not MIN_SEVERITY <= self.severity <= MAX_SEVERITY:
            raise ValueError(f"severity must be between {MIN_SEVERITY} and {MAX_SEVERITY}, got {self.severity}")

    @property
    def label(self) -> str:
        return severity_label(self.severity)


class ResultState(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class CategoryStatus:
    state: ResultState
    reason: str | None = None

    @classmethod
    def ok(cls) -> CategoryStatus:
        return cls(ResultState.OK)

    @classmethod
    def degraded(cls, reason: str) -> CategoryStatus:
        return cls(ResultState.DEGRADED, reason)

    @classmethod
    def failed(cls, reason: str) -> CategoryStatus:
        return cls(ResultState.FAILED, reason)

    def __str__(self) -> str:
        if self.reason:
            return f"{self.state.value} ({self.reason})"
        return self.state.value


@dataclass
class CategoryResult:
    category: Category
    findings: list[Finding] = field(default_factory=list)
    status: CategoryStatus = field(default_factory=CategoryStatus.ok)

    def __post_init__(self) -> None:
        # A failed category never contributes findings.
        if self.status.state is ResultState.FAILED:
            self.findings = []


@dataclass
class Report:
    source_file_identity: str
    findings: list[Finding] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    category_statuses: dict[Category, CategoryStatus] = field(default_factory=dict)

    @property
    def failed_categories(self) -> list[Category]:
        return [c for c, s in self.category_statuses.items() if s.state is ResultState.FAILED]

    @property
    def degraded_categories(self) -> list[Category]:
        return [c for c, s in self.category_statuses.items() if s.state is ResultState.DEGRADED]

    @property
    def has_critical(self) -> bool:
        return any(f.severity == MAX_SEVERITY for f in self.findings)

    def with_findings(self, findings: list[Finding]) -> Report:
        return replace(self, findings=list(findings))


class HostKind(str, Enum):
    AZURE = "azure"
    GITHUB = "github"


@dataclass(frozen=True)
class PullRequestContext:
    """Identifies the target pull request. The credential is never written anywhere."""

    host: HostKind
    organization: str
    repository: str
    pull_request_id: int
    credential: str = field(repr=False)
    project: str | None = None

    @property
    def ref(self) -> str:
        parts = [self.organization, self.project, self.repository]
        return "/".join(p for p in parts if p) + f"#{self.pull_request_id}"


@dataclass(frozen=True)
class CommentThread:
    """One existing comment thread on the pull request, reduced to what reconciliation needs."""

    id: int
    body: str
    comment_id: int | None = None
    file_path: str | None = None


@dataclass(frozen=True)
class ChangedFile:
    path: str
    change_type: str
    object_id: str | None = None
