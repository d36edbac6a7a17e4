"""Fan one source file out to per-category reviews and merge the results into a Report."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout

from biceplens_core.config import ReviewConfig
from biceplens_core.errors import AggregateFailure, ConfigurationError, ReviewCancelled, TransportError
from biceplens_core.findings import order_for_report
from biceplens_core.models import Category, CategoryResult, CategoryStatus, Report, ResultState, SourceFile
from biceplens_core.reviewer import CategoryReviewer
from biceplens_core.search import NullRetriever

logger = logging.getLogger(__name__)


def select_categories(rules: dict[Category, str], categories_filter: frozenset | None = None) -> list[Category]:
    """Categories to review, in fixed category order: present in ``rules`` and allowed by the filter."""
    return [c for c in Category if c in rules and (categories_filter is None or c in categories_filter)]


def _review_category(
    category: Category,
    rule_text: str,
    source: SourceFile,
    reviewer: CategoryReviewer,
    retriever,
    cancel_event: threading.Event,
) -> CategoryResult:
    if cancel_event.is_set():
        raise ReviewCancelled(f"{category.value}: cancelled before start")
    examples = retriever.retrieve(category, source.content)
    return reviewer.review(category, rule_text, source, examples, cancel_event=cancel_event)


def review_source(
    rules: dict[Category, str],
    source: SourceFile,
    review_config: ReviewConfig,
    reviewer: CategoryReviewer,
    retriever=None,
    cancel_event: threading.Event | None = None,
) -> Report:
    """Review ``source`` once per selected category and return the merged Report.

    At most ``review_config.concurrency_limit`` categories are in flight at a
    time. A failed category is recorded in ``Report.category_statuses`` and
    the others still contribute findings. When ``run_timeout`` elapses, the
    categories still pending are marked FAILED and the finished ones are kept.

    ``cancel_event`` belongs to the caller and may span several files. It is
    read before the fan-out and set only on an authentication failure or an
    interrupt. The run timeout cancels a per-call event instead.

    Raises:
        ConfigurationError: no category is left to review.
        TransportError: the completion service rejected the credentials.
        AggregateFailure: every category failed.
    """
    categories = select_categories(rules, review_config.categories_filter)
    if not categories:
        present = ", ".join(c.value for c in rules) or "none"
        raise ConfigurationError(f"No categories to review (document defines: {present}).")

    retriever = retriever or NullRetriever()
    interrupt_event = cancel_event or threading.Event()
    cancel_event = threading.Event()
    if interrupt_event.is_set():
        cancel_event.set()
    results: dict[Category, CategoryResult] = {}

    executor = ThreadPoolExecutor(
        max_workers=min(review_config.concurrency_limit, len(categories)),
        thread_name_prefix="biceplens-review",
    )
    futures: dict[Future, Category] = {
        executor.submit(
            _review_category, category, rules[category], source, reviewer, retriever, cancel_event
        ): category
        for category in categories
    }
    aborted = False
    fatal = False
    try:
        try:
            for future in as_completed(futures, timeout=review_config.run_timeout):
                category = futures[future]
                try:
                    results[category] = future.result()
                except ReviewCancelled as e:
                    results[category] = CategoryResult(category, status=CategoryStatus.failed(f"cancelled: {e}"))
                except TransportError as e:
                    # Only authentication failures escape the reviewer.
                    logger.error("Aborting review of %s: %s", source.identity, e)
                    aborted = fatal = True
                    raise
        except FuturesTimeout:
            logger.warning(
                "Review of %s exceeded the run timeout of %ss; cancelling pending categories.",
                source.identity,
                review_config.run_timeout,
            )
            aborted = True
    except KeyboardInterrupt:
        aborted = fatal = True
        raise
    finally:
        if aborted:
            cancel_event.set()
        if fatal:
            interrupt_event.set()
        executor.shutdown(wait=not aborted, cancel_futures=aborted)

    for category in categories:
        if category not in results:
            reason = f"cancelled: run timeout of {review_config.run_timeout}s exceeded"
            results[category] = CategoryResult(category, status=CategoryStatus.failed(reason))

    statuses = {category: results[category].status for category in categories}
    for category, status in statuses.items():
        if status.state is ResultState.FAILED:
            logger.warning("Category %s failed: %s", category.value, status.reason)
        elif status.state is ResultState.DEGRADED:
            logger.warning("Category %s degraded: %s", category.value, status.reason)

    if all(status.state is ResultState.FAILED for status in statuses.values()):
        raise AggregateFailure({category.value: status.reason for category, status in statuses.items()})

    findings = [finding for category in categories for finding in results[category].findings]
    return Report(
        source_file_identity=source.identity,
        findings=order_for_report(findings),
        category_statuses=statuses,
    )
