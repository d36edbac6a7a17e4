"""init command: write .biceplens.yml and a CI pipeline that reviews pull requests."""

from __future__ import annotations

import importlib.metadata
from pathlib import Path

import click
import yaml
from rich.console import Console

console = Console()

_PROVIDER_ENV = {
    "azure": ["AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_DEPLOYMENT"],
    "openai": ["OPENAI_API_KEY"],
    "anthropic": ["ANTHROPIC_API_KEY"],
}
_SEARCH_ENV = ["AZURE_SEARCH_ENDPOINT", "AZURE_SEARCH_ADMIN_KEY", "AZURE_SEARCH_INDEX"]
_AZURE_ENV_LINE = "      {name}: $({name})"
_GITHUB_ENV_LINE = "          {name}: ${{{{ secrets.{name} }}}}"

_AZURE_PIPELINE_TEMPLATE = """\
trigger: none

pr:
  branches:
    include:
      - main
  paths:
    include:
      - '**/*.bicep'

pool:
  vmImage: 'ubuntu-latest'

variables:
  - group: biceplens

steps:
  - task: UsePythonVersion@0
    inputs:
      versionSpec: '3.12'
    displayName: 'Use Python 3.12'

  - script: pip install "biceplens{extra}=={version}"
    displayName: 'Install biceplens'

  - script: |
      ORG_URL="$(System.CollectionUri)"
      biceplens pr \\
        --host azure \\
        --organization "$ORG_URL" \\
        --project "$(System.TeamProject)" \\
        --repository "$(Build.Repository.Name)" \\
        --pull-request-id "$(System.PullRequest.PullRequestId)" \\
        --minimum-severity {minimum_severity}
    displayName: 'Run Bicep review'
    env:
      SYSTEM_ACCESSTOKEN: $(System.AccessToken)
{env_block}
"""

_GITHUB_WORKFLOW_TEMPLATE = """\
name: Bicep Review

on:
  pull_request:
    types: [opened, synchronize, reopened]
    paths:
      - '**/*.bicep'

jobs:
  review:
    runs-on: ubuntu-latest
    permissions:
      contents: read
      pull-requests: write

    steps:
      - uses: actions/checkout@v4

      - name: Set up Python
        uses: actions/setup-python@v5
        with:
          python-version: "3.12"

      - name: Install biceplens
        run: pip install "biceplens{extra}=={version}"

      - name: Run Bicep review
        env:
          GITHUB_TOKEN: ${{{{ secrets.GITHUB_TOKEN }}}}
{env_block}
        run: |
          biceplens pr \\
            --host github \\
            --organization ${{{{ github.repository_owner }}}} \\
            --repository ${{{{ github.event.repository.name }}}} \\
            --pull-request-id ${{{{ github.event.pull_request.number }}}} \\
            --minimum-severity {minimum_severity}
"""


@click.command("init")
@click.option(
    "--host",
    type=click.Choice(["azure", "github"]),
    default=None,
    help="Where pull requests live. Prompted for when omitted.",
)
def init_cmd(host: str | None):
    """Set up biceplens for a repository.

    Writes .biceplens.yml and optionally a pipeline (Azure Pipelines or
    GitHub Actions) that runs `biceplens pr` on every pull request touching
    a Bicep file.
    """
    console.print("\n[bold cyan]biceplens init[/bold cyan]: repository setup\n")

    if host is None:
        host = click.prompt("Pull-request host", type=click.Choice(["azure", "github"]), default="azure")

    provider = click.prompt(
        "Completion provider",
        type=click.Choice(list(_PROVIDER_ENV)),
        default="azure",
    )
    minimum_severity = click.prompt("Minimum severity to report (1-5)", type=click.IntRange(1, 5), default=3)

    config: dict = {"host": host, "provider": provider, "minimum_severity": minimum_severity}
    if click.confirm("Use a custom best-practices document?", default=False):
        config["best_practices"] = click.prompt("Path to the document", default="bicep-best-practices.md")

    _write_config(config)
    console.print("[green]Created .biceplens.yml[/green]")

    secrets = _PROVIDER_ENV[provider] + _SEARCH_ENV
    if host == "azure":
        target = Path("azure-pipelines.yml")
        if click.confirm(f"\nGenerate {target}?", default=not target.exists()):
            _write_pipeline(target, _AZURE_PIPELINE_TEMPLATE, provider, minimum_severity, secrets, _AZURE_ENV_LINE)
            console.print(f"[green]Created {target}[/green]")
            console.print(
                "\n[yellow]Add these variables to a variable group named [bold]biceplens[/bold]: "
                f"{', '.join(secrets)}. Allow the build service to contribute to pull requests.[/yellow]"
            )
    else:
        target = Path(".github/workflows/biceplens.yml")
        if click.confirm(f"\nGenerate {target}?", default=True):
            _write_pipeline(target, _GITHUB_WORKFLOW_TEMPLATE, provider, minimum_severity, secrets, _GITHUB_ENV_LINE)
            console.print(f"[green]Created {target}[/green]")
            console.print(
                f"\n[yellow]Add these repository secrets (Settings → Secrets → Actions): "
                f"{', '.join(secrets)}[/yellow]"
            )

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Review a file locally with: [bold]biceplens review --bicep-file main.bicep[/bold]")


def _write_config(config: dict) -> None:
    """Write or update .biceplens.yml, preserving any existing keys."""
    path = Path(".biceplens.yml")
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _get_version() -> str:
    try:
        return importlib.metadata.version("biceplens")
    except importlib.metadata.PackageNotFoundError:
        return "0.1.0"


def _write_pipeline(
    target: Path, template: str, provider: str, minimum_severity: int, secrets: list[str], env_line: str
) -> None:
    env_block = "\n".join(env_line.format(name=name) for name in secrets)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        template.format(
            extra="[anthropic]" if provider == "anthropic" else "",
            version=_get_version(),
            minimum_severity=minimum_severity,
            env_block=env_block,
        )
    )
