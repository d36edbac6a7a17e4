"""Idempotent pull-request comments.

Each finding is posted as its own thread whose body ends with a hidden marker
carrying the finding's fingerprint. On the next run the existing threads are
listed, and a finding whose fingerprint is already present updates that
thread instead of opening a new one. Nothing is stored locally: the pull
request itself records what has been said.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum

from biceplens_core.errors import HostApiError
from biceplens_core.findings import normalize_description
from biceplens_core.hosts.base import BaseHost
from biceplens_core.models import Category, CommentThread, Finding, PullRequestContext, Report
from biceplens_core.render import render_finding_comment
from biceplens_core.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 16
MARKER_RE = re.compile(r"<!--\s*biceplens:fingerprint=([0-9a-f]{8,64})\s*-->")


def compute_fingerprint(identity: str, category: Category, description: str) -> str:
    """Stable across runs for the same file, category and (normalized) finding text."""
    payload = "\x1f".join([identity, category.value, normalize_description(description)])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def format_marker(fingerprint: str) -> str:
    return f"<!-- biceplens:fingerprint={fingerprint} -->"


def build_comment_body(finding: Finding, identity: str, fingerprint: str, simple: bool = False) -> str:
    return f"{render_finding_comment(finding, identity, simple)}\n\n{format_marker(fingerprint)}"


def index_threads(threads: list[CommentThread]) -> dict[str, CommentThread]:
    """Map fingerprint -> first thread carrying it. Threads without a marker are ignored."""
    index: dict[str, CommentThread] = {}
    for thread in threads:
        for fingerprint in MARKER_RE.findall(thread.body or ""):
            index.setdefault(fingerprint, thread)
    return index


class ThreadAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class ThreadOutcome:
    fingerprint: str
    action: ThreadAction
    thread_id: int | None = None
    error: str | None = None


@dataclass
class ReconciliationOutcome:
    pull_request: str
    source_file_identity: str
    outcomes: list[ThreadOutcome] = field(default_factory=list)

    def count(self, action: ThreadAction) -> int:
        return sum(1 for o in self.outcomes if o.action is action)

    @property
    def created(self) -> int:
        return self.count(ThreadAction.CREATED)

    @property
    def updated(self) -> int:
        return self.count(ThreadAction.UPDATED)

    @property
    def unchanged(self) -> int:
        return self.count(ThreadAction.UNCHANGED)

    @property
    def failed(self) -> list[ThreadOutcome]:
        return [o for o in self.outcomes if o.action is ThreadAction.FAILED]


def reconcile(
    report: Report,
    host: BaseHost,
    context: PullRequestContext,
    policy: RetryPolicy | None = None,
    cancel_event: threading.Event | None = None,
    simple: bool = False,
) -> ReconciliationOutcome:
    """Create or update one thread per finding in ``report``.

    Threads whose fingerprint matches no current finding are left alone.
    Listing failures and authentication failures are raised; a failed create
    or update is recorded for that finding and the rest continue.
    """
    policy = policy or RetryPolicy()
    identity = report.source_file_identity
    outcome = ReconciliationOutcome(pull_request=context.ref, source_file_identity=identity)

    existing = index_threads(
        call_with_retry(lambda: host.list_threads(context), policy, f"list threads on {context.ref}", cancel_event)
    )

    seen: set[str] = set()
    for finding in report.findings:
        fingerprint = compute_fingerprint(identity, finding.category, finding.description)
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        body = build_comment_body(finding, identity, fingerprint, simple)
        thread = existing.get(fingerprint)

        try:
            if thread is None:
                thread_id = call_with_retry(
                    lambda: host.create_thread(context, body, identity),
                    policy,
                    f"create thread for {fingerprint}",
                    cancel_event,
                )
                outcome.outcomes.append(ThreadOutcome(fingerprint, ThreadAction.CREATED, thread_id))
            elif thread.body.strip() == body.strip():
                outcome.outcomes.append(ThreadOutcome(fingerprint, ThreadAction.UNCHANGED, thread.id))
            else:
                call_with_retry(
                    lambda: host.update_thread(context, thread, body),
                    policy,
                    f"update thread {thread.id}",
                    cancel_event,
                )
                outcome.outcomes.append(ThreadOutcome(fingerprint, ThreadAction.UPDATED, thread.id))
        except HostApiError as e:
            if e.is_auth_failure:
                raise
            logger.warning("Could not post finding %s on %s: %s", fingerprint, context.ref, e)
            outcome.outcomes.append(
                ThreadOutcome(fingerprint, ThreadAction.FAILED, thread.id if thread else None, str(e))
            )

    logger.info(
        "%s [%s]: %d created, %d updated, %d unchanged, %d failed",
        context.ref,
        identity,
        outcome.created,
        outcome.updated,
        outcome.unchanged,
        len(outcome.failed),
    )
    return outcome
