"""review command: review one local Bicep file and print the report."""

from __future__ import annotations

import click

from biceplens_cli.errors import cli_errors
from biceplens_core.pipeline import run_local_review
from biceplens_core.render import render_report

_REVIEW_OPTIONS = [
    click.option(
        "--best-practices-file",
        "best_practices",
        default=None,
        help="Markdown best-practices document. Overrides config file; defaults to the built-in document.",
    ),
    click.option(
        "--category",
        "categories",
        multiple=True,
        help="Only review this category (repeatable): Parameters, Variables, Naming, Resources, Outputs.",
    ),
    click.option(
        "--minimum-severity",
        type=click.IntRange(1, 5),
        default=None,
        help="Only report findings at or above this severity (1-5).",
    ),
    click.option("--simple", is_flag=True, help="Condensed one-line-per-finding output."),
    click.option(
        "--provider",
        type=click.Choice(["azure", "openai", "anthropic"]),
        default=None,
        help="Completion provider. Overrides config file.",
    ),
    click.option("--model", default=None, help="Model or Azure deployment name. Overrides config file."),
    click.option("--concurrency", "concurrency_limit", type=int, default=None, help="Categories reviewed at once."),
    click.option("--max-retries", type=int, default=None, help="Retries for transient completion/host errors."),
    click.option("--run-timeout", type=float, default=None, help="Seconds allowed for reviewing one file."),
    click.option("--fail-on-critical", is_flag=True, help="Exit 1 when a severity 5 finding is reported."),
]


def review_options(fn):
    """Apply the options shared by `review` and `pr`."""
    for option in reversed(_REVIEW_OPTIONS):
        fn = option(fn)
    return fn


def build_overrides(
    best_practices, categories, minimum_severity, simple, provider, model, concurrency_limit, max_retries, run_timeout
) -> dict:
    return {
        "best_practices": best_practices,
        "categories": list(categories) or None,
        "minimum_severity": minimum_severity,
        "simple_output": simple or None,
        "provider": provider,
        "model": model,
        "concurrency_limit": concurrency_limit,
        "max_retries": max_retries,
        "run_timeout": run_timeout,
    }


@click.command("review")
@click.option("--bicep-file", required=True, help="Path to the Bicep file to review.")
@review_options
@click.pass_context
def review_cmd(
    ctx,
    bicep_file: str,
    best_practices: str | None,
    categories: tuple,
    minimum_severity: int | None,
    simple: bool,
    provider: str | None,
    model: str | None,
    concurrency_limit: int | None,
    max_retries: int | None,
    run_timeout: float | None,
    fail_on_critical: bool,
):
    """Review a local Bicep file against the best-practices document.

    Each category of the document is reviewed in its own completion call.
    The report goes to stdout; progress and warnings go to stderr.

    \b
    Environment variables (provider azure, the default):
      AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY, AZURE_OPENAI_DEPLOYMENT
    Optional few-shot examples:
      AZURE_SEARCH_ENDPOINT, AZURE_SEARCH_ADMIN_KEY, AZURE_SEARCH_INDEX
    """
    from biceplens_core.config import build_review_config, load_config

    config_path = (ctx.obj or {}).get("config_path", ".biceplens.yml")
    with cli_errors():
        config = load_config(
            config_path,
            cli_overrides=build_overrides(
                best_practices,
                categories,
                minimum_severity,
                simple,
                provider,
                model,
                concurrency_limit,
                max_retries,
                run_timeout,
            ),
        )
        review_config = build_review_config(config)
        report = run_local_review(bicep_file, config)

    click.echo(render_report(report, review_config.minimum_severity, review_config.simple_output), nl=False)

    if report.failed_categories:
        failed = ", ".join(c.value for c in report.failed_categories)
        click.echo(f"Review incomplete: {failed} failed.", err=True)
        ctx.exit(1)
    if fail_on_critical and report.has_critical:
        click.echo("Critical issues found.", err=True)
        ctx.exit(1)
