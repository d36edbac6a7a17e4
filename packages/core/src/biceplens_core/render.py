"""Render a Report as Markdown text for stdout or a pull-request comment.

Rendering is pure: the same Report and threshold always produce the same text.
"""

from __future__ import annotations

import io
import textwrap

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from biceplens_core.findings import filter_findings
from biceplens_core.models import MAX_SEVERITY, MIN_SEVERITY, Finding, Report, ResultState

TABLE_WRAP_WIDTH = 60
_TABLE_CONSOLE_WIDTH = 220

SEVERITY_EMOJI = {5: "🚨", 4: "⚠️", 3: "⚡", 2: "ℹ️", 1: "💡"}
CRITICAL_BANNER = "⚠️ **CRITICAL ISSUES FOUND**"


def _table_label(finding: Finding) -> str:
    if finding.severity == MAX_SEVERITY:
        return f"{finding.label} ⚠️"
    return finding.label


def _render_table(findings: list[Finding]) -> str:
    table = Table(box=box.ASCII, show_lines=True, show_edge=True)
    table.add_column("Category", no_wrap=True)
    table.add_column("Finding", overflow="fold")
    table.add_column("Severity", no_wrap=True)
    table.add_column("Impact", overflow="fold")
    for f in findings:
        table.add_row(
            Text(f.category.value),
            Text(textwrap.fill(f.description, TABLE_WRAP_WIDTH)),
            Text(_table_label(f)),
            Text(textwrap.fill(f.impact, TABLE_WRAP_WIDTH) if f.impact else ""),
        )

    buffer = io.StringIO()
    console = Console(file=buffer, width=_TABLE_CONSOLE_WIDTH, color_system=None, emoji=False, highlight=False)
    console.print(table)
    return "\n".join(f"    {line.rstrip()}" for line in buffer.getvalue().rstrip("\n").splitlines())


def _render_simple(findings: list[Finding]) -> str:
    return "\n".join(f"- [{f.category.value}] {f.label}: {f.description}" for f in findings)


def _category_warnings(report: Report) -> list[str]:
    lines = []
    for category, status in report.category_statuses.items():
        if status.state is ResultState.FAILED:
            lines.append(f"- **{category.value}** was not reviewed: {status.reason}")
        elif status.state is ResultState.DEGRADED:
            lines.append(f"- **{category.value}** was only partially parsed: {status.reason}")
    return lines


def render_report(report: Report, minimum_severity: int = MIN_SEVERITY, simple: bool = False) -> str:
    """Render ``report`` for findings at or above ``minimum_severity``.

    ``simple`` produces one line per finding; otherwise findings are laid out
    in a table with their impact text.
    """
    findings = filter_findings(report.findings, minimum_severity)
    lines = ["# Bicep Code Review Results", "", f"File: `{report.source_file_identity}`", ""]

    if not findings:
        lines.append(f"No issues found with severity {minimum_severity} or higher.")
    else:
        lines.append(f"Found {len(findings)} issues with severity {minimum_severity} or higher.")
        lines.append("")
        if simple:
            lines.append(_render_simple(findings))
        else:
            lines.extend(["```", _render_table(findings), "```"])
        if any(f.severity == MAX_SEVERITY for f in findings):
            lines.extend(["", CRITICAL_BANNER])

    warnings = _category_warnings(report)
    if warnings:
        lines.extend(["", "**Warnings:**", *warnings])

    return "\n".join(lines) + "\n"


def render_finding_comment(finding: Finding, identity: str, simple: bool = False) -> str:
    """Body of the pull-request comment for one finding."""
    emoji = SEVERITY_EMOJI.get(finding.severity, "")
    if simple:
        return f"{emoji} **[{finding.category.value}] {finding.label}** `{identity}`: {finding.description}"
    body = (
        f"### {emoji} Severity {finding.label}: {finding.description}\n\n"
        f"**Category:** {finding.category.value} · **File:** `{identity}`"
    )
    if finding.impact:
        body += f"\n\n**Impact:** {finding.impact}"
    return body
