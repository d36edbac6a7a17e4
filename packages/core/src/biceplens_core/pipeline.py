"""End-to-end runs: review a local file, or review and annotate a pull request."""

from __future__ import annotations

import fnmatch
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from biceplens_core.annotations import ReconciliationOutcome, reconcile
from biceplens_core.config import ReviewConfig, build_review_config, load_best_practices
from biceplens_core.errors import ConfigurationError, HostApiError
from biceplens_core.findings import filter_findings, order_for_report
from biceplens_core.hosts.base import BaseHost
from biceplens_core.models import Category, ChangedFile, PullRequestContext, Report, SourceFile
from biceplens_core.orchestrator import review_source
from biceplens_core.providers.factory import get_provider
from biceplens_core.reviewer import CategoryReviewer
from biceplens_core.rules import extract_categories
from biceplens_core.search import get_retriever
from biceplens_core.utils.retry import RetryPolicy, call_with_retry

console = Console(stderr=True)
logger = logging.getLogger(__name__)


@dataclass
class ReviewSession:
    """Everything shared by the reviews of one invocation."""

    rules: dict[Category, str]
    review_config: ReviewConfig
    reviewer: CategoryReviewer
    retriever: object
    # Set on Ctrl-C or an authentication failure; a per-file run timeout leaves it clear.
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def policy(self) -> RetryPolicy:
        return self.reviewer.policy

    def review(self, source: SourceFile) -> Report:
        return review_source(
            self.rules, source, self.review_config, self.reviewer, self.retriever, cancel_event=self.cancel_event
        )

    def close(self) -> None:
        self.retriever.close()


def open_session(config: dict, provider=None, retriever=None) -> ReviewSession:
    """Validate ``config`` and build the provider, retriever and rules for a run.

    Raises ConfigurationError before any network call when the configuration
    or the best-practices document is unusable.
    """
    review_config = build_review_config(config)
    rules = extract_categories(load_best_practices(config))
    provider = provider if provider is not None else get_provider(config)
    reviewer = CategoryReviewer(
        provider,
        policy=RetryPolicy.from_review_config(review_config),
        max_chars=review_config.max_chars_per_file,
    )
    return ReviewSession(
        rules=rules,
        review_config=review_config,
        reviewer=reviewer,
        retriever=retriever if retriever is not None else get_retriever(config),
    )


def read_source(path: str) -> SourceFile:
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"Bicep file not found: {path}")
    return SourceFile(identity=p.as_posix(), content=p.read_text(encoding="utf-8"))


def run_local_review(bicep_file: str, config: dict, session: ReviewSession | None = None) -> Report:
    """Review one local file. The returned Report is not yet filtered by severity."""
    source = read_source(bicep_file)
    own_session = session is None
    session = session or open_session(config)
    try:
        console.print(f"Reviewing [bold]{source.identity}[/bold] ({len(session.rules)} categories)")
        return session.review(source)
    finally:
        if own_session:
            session.close()


def matches_patterns(path: str, patterns: list[str]) -> bool:
    """True if the full path or its basename matches any glob in ``patterns``."""
    basename = path.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(path, p) or fnmatch.fnmatch(basename, p) for p in patterns)


@dataclass
class FileReview:
    identity: str
    report: Report | None = None
    reconciliation: ReconciliationOutcome | None = None
    error: str | None = None


@dataclass
class PullRequestReview:
    pull_request: str
    files: list[FileReview] = field(default_factory=list)

    @property
    def reviewed(self) -> list[FileReview]:
        return [f for f in self.files if f.report is not None]

    @property
    def has_failures(self) -> bool:
        """A category or a thread failed, or a file could not be reviewed."""
        for f in self.files:
            if f.error or (f.report and f.report.failed_categories):
                return True
            if f.reconciliation and f.reconciliation.failed:
                return True
        return False

    @property
    def has_critical(self) -> bool:
        return any(f.report.has_critical for f in self.reviewed)


def _collect_sources(
    host: BaseHost,
    context: PullRequestContext,
    patterns: list[str],
    bicep_files: list[str] | None,
    summary: PullRequestReview,
    session: ReviewSession,
) -> list[SourceFile]:
    if bicep_files:
        return [read_source(path) for path in bicep_files]

    sources: list[SourceFile] = []
    changed: list[ChangedFile] = call_with_retry(
        lambda: host.list_changed_files(context), session.policy, f"list files of {context.ref}", session.cancel_event
    )
    for changed_file in sorted(changed, key=lambda f: f.path):
        if not matches_patterns(changed_file.path, patterns):
            continue
        if "delete" in changed_file.change_type.lower():
            console.print(f"  Skipping deleted file: {changed_file.path}")
            continue
        try:
            content = call_with_retry(
                lambda: host.get_file_content(context, changed_file),
                session.policy,
                f"fetch {changed_file.path}",
                session.cancel_event,
            )
        except HostApiError as e:
            if e.is_auth_failure:
                raise
            console.print(f"  [red]Could not fetch {changed_file.path}: {e}[/red]")
            summary.files.append(FileReview(identity=changed_file.path, error=str(e)))
            continue
        sources.append(SourceFile(identity=changed_file.path, content=content))
    return sources


def run_pr_review(
    context: PullRequestContext,
    config: dict,
    host: BaseHost,
    bicep_files: list[str] | None = None,
    session: ReviewSession | None = None,
) -> PullRequestReview:
    """Review every matching file of a pull request and reconcile its comment threads.

    With ``bicep_files`` the given local files are reviewed and annotated on
    the pull request; otherwise the pull request's changed files matching
    ``file_patterns`` are fetched from the host. Fatal errors (configuration,
    authentication, every category failing) are raised.
    """
    own_session = session is None
    session = session or open_session(config)
    summary = PullRequestReview(pull_request=context.ref)
    try:
        patterns = config.get("file_patterns") or ["*.bicep"]
        sources = _collect_sources(host, context, patterns, bicep_files, summary, session)
        if not sources and not summary.files:
            console.print(f"[yellow]No Bicep files changed in {context.ref}.[/yellow]")
            return summary

        total = len(sources)
        for i, source in enumerate(sources, 1):
            console.print(f"\n[[{i}/{total}]] Reviewing: {source.identity}")
            report = session.review(source)
            kept = filter_findings(report.findings, session.review_config.minimum_severity)
            report = report.with_findings(order_for_report(kept))
            file_review = FileReview(identity=source.identity, report=report)
            summary.files.append(file_review)
            try:
                file_review.reconciliation = reconcile(
                    report,
                    host,
                    context,
                    session.policy,
                    cancel_event=session.cancel_event,
                    simple=session.review_config.simple_output,
                )
            except HostApiError as e:
                if e.is_auth_failure:
                    raise
                file_review.error = f"could not reconcile threads: {e}"
                console.print(f"  [red]{file_review.error}[/red]")
                continue
            r = file_review.reconciliation
            console.print(
                f"  {len(report.findings)} finding(s): {r.created} new, {r.updated} updated, {r.unchanged} unchanged."
            )
    finally:
        if own_session:
            session.close()
    return summary
