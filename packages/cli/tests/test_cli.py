"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import MagicMock, patch

import yaml
from click.testing import CliRunner

from biceplens_cli.cli import main
from biceplens_core.annotations import ReconciliationOutcome, ThreadAction, ThreadOutcome
from biceplens_core.config import DEFAULT_CONFIG
from biceplens_core.errors import AggregateFailure, ConfigurationError
from biceplens_core.models import Category, CategoryStatus, Finding, HostKind, Report
from biceplens_core.pipeline import FileReview, PullRequestReview


def _make_config(**overrides):
    return {**DEFAULT_CONFIG, **overrides}


def _report(*findings, failed=()):
    statuses = {c: CategoryStatus.ok() for c in Category}
    for category in failed:
        statuses[category] = CategoryStatus.failed("server_error: 503")
    return Report(source_file_identity="main.bicep", findings=list(findings), category_statuses=statuses)


SERIOUS = Finding(Category.PARAMETERS, "`adminPassword` is not @secure().", 4, "Secret leaks.")
CRITICAL = Finding(Category.OUTPUTS, "Output returns the storage key.", 5, "Key exposed.")
MINOR = Finding(Category.NAMING, "Name lacks an environment suffix.", 2)


def _patch_review(mocker, report, config=None):
    mocker.patch("biceplens_core.config.load_config", return_value=config or _make_config())
    return mocker.patch("biceplens_cli.commands.review.run_local_review", return_value=report)


class TestCLIValidation:
    def test_bicep_file_is_required(self):
        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code == 2
        assert "--bicep-file" in result.output

    def test_severity_out_of_range(self):
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep", "--minimum-severity", "0"])
        assert result.exit_code == 2

    def test_configuration_error_is_a_usage_error(self, mocker):
        mocker.patch("biceplens_core.config.load_config", return_value=_make_config())
        mocker.patch(
            "biceplens_cli.commands.review.run_local_review",
            side_effect=ConfigurationError("Bicep file not found: main.bicep"),
        )
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert result.exit_code == 2
        assert "Bicep file not found" in result.output

    def test_unknown_category_is_a_usage_error(self, mocker):
        mocker.patch("biceplens_core.config.load_config", return_value=_make_config(categories=["Security"]))
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert result.exit_code == 2
        assert "Unknown category" in result.output

    def test_aggregate_failure_exits_1(self, mocker):
        mocker.patch("biceplens_core.config.load_config", return_value=_make_config())
        mocker.patch(
            "biceplens_cli.commands.review.run_local_review",
            side_effect=AggregateFailure({"Parameters": "timeout"}),
        )
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert result.exit_code == 1
        assert "all categories failed" in result.output


# ---------------------------------------------------------------------------
# review command
# ---------------------------------------------------------------------------


class TestReviewCommand:
    def test_prints_report(self, mocker):
        _patch_review(mocker, _report(SERIOUS, MINOR))
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert result.exit_code == 0
        assert "# Bicep Code Review Results" in result.output
        assert "Found 2 issues with severity 1 or higher." in result.output

    def test_overrides_reach_load_config(self, mocker):
        load = mocker.patch("biceplens_core.config.load_config", return_value=_make_config())
        mocker.patch("biceplens_cli.commands.review.run_local_review", return_value=_report())
        CliRunner().invoke(
            main,
            [
                "review",
                "--bicep-file",
                "main.bicep",
                "--minimum-severity",
                "4",
                "--category",
                "Outputs",
                "--category",
                "Naming",
                "--simple",
                "--provider",
                "openai",
            ],
        )
        overrides = load.call_args.kwargs["cli_overrides"]
        assert overrides["minimum_severity"] == 4
        assert overrides["categories"] == ["Outputs", "Naming"]
        assert overrides["simple_output"] is True
        assert overrides["provider"] == "openai"
        assert overrides["best_practices"] is None

    def test_config_path_option(self, mocker):
        load = mocker.patch("biceplens_core.config.load_config", return_value=_make_config())
        mocker.patch("biceplens_cli.commands.review.run_local_review", return_value=_report())
        CliRunner().invoke(main, ["--config", "ci.yml", "review", "--bicep-file", "main.bicep"])
        assert load.call_args.args[0] == "ci.yml"

    def test_threshold_from_config(self, mocker):
        _patch_review(mocker, _report(SERIOUS, MINOR), config=_make_config(minimum_severity=3))
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert "Found 1 issues with severity 3 or higher." in result.output
        assert "environment suffix" not in result.output

    def test_simple_output(self, mocker):
        _patch_review(mocker, _report(SERIOUS), config=_make_config(simple_output=True))
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert "- [Parameters] 4 (Serious):" in result.output

    def test_failed_category_exits_1_after_printing(self, mocker):
        _patch_review(mocker, _report(SERIOUS, failed=[Category.VARIABLES]))
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"])
        assert result.exit_code == 1
        assert "**Variables** was not reviewed" in result.output
        assert "Review incomplete: Variables failed." in result.output

    def test_critical_only_fails_when_asked(self, mocker):
        _patch_review(mocker, _report(CRITICAL))
        assert CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep"]).exit_code == 0
        result = CliRunner().invoke(main, ["review", "--bicep-file", "main.bicep", "--fail-on-critical"])
        assert result.exit_code == 1
        assert "CRITICAL ISSUES FOUND" in result.output


# ---------------------------------------------------------------------------
# pr command
# ---------------------------------------------------------------------------


def _summary(files):
    return PullRequestReview(pull_request="contoso/infra/platform#42", files=files)


def _reconciled(created=1, failed=0):
    outcomes = [ThreadOutcome(f"{i:016x}", ThreadAction.CREATED, i) for i in range(created)]
    outcomes += [ThreadOutcome(f"f{i:015x}", ThreadAction.FAILED, error="503") for i in range(failed)]
    return ReconciliationOutcome("contoso/infra/platform#42", "main.bicep", outcomes)


def _patch_pr(mocker, summary, config=None, token="pat-token"):
    mocker.patch("biceplens_core.config.load_config", return_value=config or _make_config())
    mocker.patch("biceplens_cli.auth.resolve_host_token", return_value=token)
    get_host = mocker.patch("biceplens_cli.commands.pr.get_host")
    run = mocker.patch("biceplens_cli.commands.pr.run_pr_review", return_value=summary)
    return get_host, run


_AZURE_ARGS = [
    "pr",
    "--organization",
    "contoso",
    "--project",
    "infra",
    "--repository",
    "platform",
    "--pull-request-id",
    "42",
]


class TestPrCommand:
    def test_successful_run(self, mocker):
        summary = _summary([FileReview("main.bicep", report=_report(SERIOUS), reconciliation=_reconciled())])
        get_host, run = _patch_pr(mocker, summary)
        result = CliRunner().invoke(main, _AZURE_ARGS)
        assert result.exit_code == 0, result.output
        context = get_host.call_args.args[0]
        assert context.host is HostKind.AZURE
        assert context.project == "infra"
        assert context.pull_request_id == 42
        assert context.credential == "pat-token"
        assert run.call_args.kwargs["bicep_files"] is None

    def test_local_files_are_forwarded(self, mocker):
        _, run = _patch_pr(mocker, _summary([]))
        CliRunner().invoke(main, _AZURE_ARGS + ["--bicep-file", "a.bicep", "--bicep-file", "b.bicep"])
        assert run.call_args.kwargs["bicep_files"] == ["a.bicep", "b.bicep"]

    def test_azure_requires_project(self, mocker):
        _patch_pr(mocker, _summary([]))
        result = CliRunner().invoke(
            main, ["pr", "--organization", "contoso", "--repository", "platform", "--pull-request-id", "1"]
        )
        assert result.exit_code == 2
        assert "--project" in result.output

    def test_github_does_not_need_project(self, mocker):
        get_host, _ = _patch_pr(mocker, _summary([]), config=_make_config(host="github"))
        result = CliRunner().invoke(
            main,
            [
                "pr",
                "--host",
                "github",
                "--organization",
                "contoso",
                "--repository",
                "platform",
                "--pull-request-id",
                "3",
            ],
        )
        assert result.exit_code == 0, result.output
        assert get_host.call_args.args[0].host is HostKind.GITHUB

    def test_missing_token(self, mocker):
        _patch_pr(mocker, _summary([]), token=None)
        result = CliRunner().invoke(main, _AZURE_ARGS)
        assert result.exit_code == 2
        assert "AZURE_DEVOPS_PAT" in result.output

    def test_thread_failure_exits_1(self, mocker):
        summary = _summary([FileReview("main.bicep", report=_report(SERIOUS), reconciliation=_reconciled(1, 1))])
        _patch_pr(mocker, summary)
        result = CliRunner().invoke(main, _AZURE_ARGS)
        assert result.exit_code == 1
        assert "Review incomplete" in result.output

    def test_file_error_exits_1(self, mocker):
        _patch_pr(mocker, _summary([FileReview("main.bicep", error="not_found: gone")]))
        result = CliRunner().invoke(main, _AZURE_ARGS)
        assert result.exit_code == 1

    def test_fail_on_critical(self, mocker):
        summary = _summary([FileReview("main.bicep", report=_report(CRITICAL), reconciliation=_reconciled())])
        _patch_pr(mocker, summary)
        assert CliRunner().invoke(main, _AZURE_ARGS).exit_code == 0
        assert CliRunner().invoke(main, _AZURE_ARGS + ["--fail-on-critical"]).exit_code == 1


# ---------------------------------------------------------------------------
# auth.py
# ---------------------------------------------------------------------------


class TestResolveHostToken:
    def test_explicit_token_wins(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.setenv("AZURE_DEVOPS_PAT", "env-pat")
        assert resolve_host_token("azure", "flag-pat") == "flag-pat"

    def test_azure_env_var(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.setenv("AZURE_DEVOPS_PAT", "env-pat")
        assert resolve_host_token("azure") == "env-pat"

    def test_azure_pipelines_access_token(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("AZURE_DEVOPS_PAT", raising=False)
        monkeypatch.setenv("SYSTEM_ACCESSTOKEN", "job-token")
        assert resolve_host_token("azure") == "job-token"

    def test_azure_never_calls_gh(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("AZURE_DEVOPS_PAT", raising=False)
        monkeypatch.delenv("SYSTEM_ACCESSTOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            assert resolve_host_token("azure") is None
        mock_run.assert_not_called()

    def test_github_env_var(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_host_token("github") == "env-token"

    def test_github_falls_back_to_gh_cli(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            assert resolve_host_token("github") == "gh-token"

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            assert resolve_host_token("github") is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            assert resolve_host_token("github") is None

    def test_returns_none_when_gh_returns_empty(self, monkeypatch):
        from biceplens_cli.auth import resolve_host_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="   ")
            assert resolve_host_token("github") is None


# ---------------------------------------------------------------------------
# init command
# ---------------------------------------------------------------------------


class TestInitCommand:
    def test_writes_biceplens_yml(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(
            main,
            ["init", "--host", "azure"],
            input="openai\n4\nN\nN\n",  # provider, severity, no custom doc, no pipeline
        )
        assert result.exit_code == 0, result.output
        config = yaml.safe_load((tmp_path / ".biceplens.yml").read_text())
        assert config == {"host": "azure", "provider": "openai", "minimum_severity": 4}
        assert not (tmp_path / "azure-pipelines.yml").exists()

    def test_preserves_existing_keys(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".biceplens.yml").write_text("concurrency_limit: 5\nprovider: anthropic\n")
        CliRunner().invoke(main, ["init", "--host", "github"], input="azure\n3\nN\nN\n")
        config = yaml.safe_load((tmp_path / ".biceplens.yml").read_text())
        assert config["concurrency_limit"] == 5
        assert config["provider"] == "azure"

    def test_custom_document_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        CliRunner().invoke(main, ["init", "--host", "azure"], input="azure\n3\nY\ndocs/bicep.md\nN\n")
        config = yaml.safe_load((tmp_path / ".biceplens.yml").read_text())
        assert config["best_practices"] == "docs/bicep.md"

    def test_writes_azure_pipeline(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        CliRunner().invoke(main, ["init", "--host", "azure"], input="azure\n2\nN\nY\n")
        pipeline = (tmp_path / "azure-pipelines.yml").read_text()
        assert "biceplens pr" in pipeline
        assert "--minimum-severity 2" in pipeline
        assert "AZURE_OPENAI_API_KEY: $(AZURE_OPENAI_API_KEY)" in pipeline
        assert "SYSTEM_ACCESSTOKEN: $(System.AccessToken)" in pipeline
        assert yaml.safe_load(pipeline)["pr"]["paths"]["include"] == ["**/*.bicep"]

    def test_writes_github_workflow(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        CliRunner().invoke(main, ["init"], input="github\nanthropic\n3\nN\nY\n")
        workflow = (tmp_path / ".github" / "workflows" / "biceplens.yml").read_text()
        assert "--host github" in workflow
        assert "biceplens[anthropic]==" in workflow
        assert "ANTHROPIC_API_KEY: ${{ secrets.ANTHROPIC_API_KEY }}" in workflow
        steps = yaml.safe_load(workflow)["jobs"]["review"]["steps"]
        assert steps[-1]["env"]["GITHUB_TOKEN"] == "${{ secrets.GITHUB_TOKEN }}"
