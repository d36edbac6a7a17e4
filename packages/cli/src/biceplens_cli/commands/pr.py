"""pr command: review a pull request's Bicep files and annotate the pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from biceplens_cli.commands.review import build_overrides, review_options
from biceplens_cli.errors import cli_errors
from biceplens_core.hosts.factory import get_host
from biceplens_core.models import HostKind, PullRequestContext
from biceplens_core.pipeline import PullRequestReview, run_pr_review

console = Console()


def print_summary(summary: PullRequestReview) -> None:
    table = Table(title=f"Bicep review: {summary.pull_request}", show_header=True, header_style="bold cyan")
    table.add_column("File", max_width=60)
    table.add_column("Findings", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Status")

    for f in summary.files:
        if f.report is None:
            table.add_row(f.identity, "-", "-", "-", "-", f"[red]{f.error}[/red]")
            continue
        r = f.reconciliation
        notes = [f"{c.value} failed" for c in f.report.failed_categories]
        notes += [f"{c.value} degraded" for c in f.report.degraded_categories]
        if f.error:
            notes.append(f.error)
        if r and r.failed:
            notes.append(f"{len(r.failed)} thread(s) failed")
        status = "[yellow]" + "; ".join(notes) + "[/yellow]" if notes else "[green]ok[/green]"
        table.add_row(
            f.identity,
            str(len(f.report.findings)),
            str(r.created) if r else "-",
            str(r.updated) if r else "-",
            str(r.unchanged) if r else "-",
            status,
        )
    console.print(table)


@click.command("pr")
@click.option(
    "--host",
    type=click.Choice([h.value for h in HostKind]),
    default=None,
    help="Pull-request host. Overrides config file (default azure).",
)
@click.option("--organization", required=True, help="Azure DevOps organization (name or URL), or GitHub owner.")
@click.option("--project", default=None, help="Azure DevOps project. Not used for GitHub.")
@click.option("--repository", required=True, help="Repository name.")
@click.option("--pull-request-id", type=int, required=True, help="Pull request number.")
@click.option("--pat", default=None, help="Access token. Defaults to AZURE_DEVOPS_PAT / GITHUB_TOKEN.")
@click.option(
    "--bicep-file",
    "bicep_files",
    multiple=True,
    help="Review these local files instead of the pull request's changed files (repeatable).",
)
@review_options
@click.pass_context
def pr_cmd(
    ctx,
    host: str | None,
    organization: str,
    project: str | None,
    repository: str,
    pull_request_id: int,
    pat: str | None,
    bicep_files: tuple,
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
    """Review the Bicep files of a pull request and post one comment per finding.

    Comments carry a hidden fingerprint, so re-running on the same pull
    request updates earlier comments instead of posting duplicates.

    \b
    Credentials:
      AZURE_DEVOPS_PAT     Azure DevOps personal access token (or --pat)
      GITHUB_TOKEN         GitHub token (or --pat, or `gh auth login`)
    """
    from biceplens_cli.auth import resolve_host_token
    from biceplens_core.config import load_config

    config_path = (ctx.obj or {}).get("config_path", ".biceplens.yml")
    overrides = build_overrides(
        best_practices,
        categories,
        minimum_severity,
        simple,
        provider,
        model,
        concurrency_limit,
        max_retries,
        run_timeout,
    )
    overrides["host"] = host
    with cli_errors():
        config = load_config(config_path, cli_overrides=overrides)

    host_name = str(config.get("host") or "azure")
    try:
        host_kind = HostKind(host_name)
    except ValueError:
        raise click.UsageError(f"Unknown host {host_name!r}. Choose azure or github.")
    if host_kind is HostKind.AZURE and not project:
        raise click.UsageError("--project is required for Azure DevOps pull requests.")

    token = resolve_host_token(host_kind.value, pat)
    if not token:
        env_var = "AZURE_DEVOPS_PAT" if host_kind is HostKind.AZURE else "GITHUB_TOKEN"
        raise click.UsageError(f"No access token found. Pass --pat or set {env_var}.")

    context = PullRequestContext(
        host=host_kind,
        organization=organization,
        repository=repository,
        pull_request_id=pull_request_id,
        credential=token,
        project=project,
    )

    with cli_errors():
        with get_host(context, timeout=float(config.get("request_timeout", 30.0))) as pr_host:
            summary = run_pr_review(context, config, pr_host, bicep_files=list(bicep_files) or None)

    print_summary(summary)

    if summary.has_failures:
        click.echo("Review incomplete: see the status column above.", err=True)
        ctx.exit(1)
    if fail_on_critical and summary.has_critical:
        click.echo("Critical issues found.", err=True)
        ctx.exit(1)
