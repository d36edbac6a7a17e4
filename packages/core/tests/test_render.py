"""Tests for Markdown report rendering."""

from biceplens_core.models import Category, CategoryStatus, Finding, Report
from biceplens_core.render import CRITICAL_BANNER, TABLE_WRAP_WIDTH, render_finding_comment, render_report


def _report(findings, statuses=None):
    return Report(
        source_file_identity="infra/main.bicep",
        findings=findings,
        category_statuses=statuses or {Category.PARAMETERS: CategoryStatus.ok()},
    )


SECRET = Finding(Category.PARAMETERS, "`adminPassword` is not marked @secure().", 5, "Password is logged.")
DESC = Finding(Category.PARAMETERS, "Missing @description on location.", 2)
NAMING = Finding(Category.NAMING, "Storage account name is hardcoded.", 3, "Deployments collide across environments.")


class TestRenderReport:
    def test_header_and_count(self):
        text = render_report(_report([SECRET, DESC, NAMING]), minimum_severity=3)
        assert text.startswith("# Bicep Code Review Results\n")
        assert "File: `infra/main.bicep`" in text
        assert "Found 2 issues with severity 3 or higher." in text

    def test_findings_below_threshold_are_not_rendered(self):
        text = render_report(_report([SECRET, DESC]), minimum_severity=3)
        assert "Missing @description" not in text

    def test_no_issues_message(self):
        text = render_report(_report([DESC]), minimum_severity=4)
        assert "No issues found with severity 4 or higher." in text
        assert CRITICAL_BANNER not in text

    def test_critical_banner_only_with_visible_critical_findings(self):
        assert CRITICAL_BANNER in render_report(_report([SECRET]), minimum_severity=1)
        assert CRITICAL_BANNER not in render_report(_report([NAMING]), minimum_severity=1)

    def test_table_layout(self):
        text = render_report(_report([SECRET, NAMING]))
        assert "```" in text
        header = next(line for line in text.splitlines() if "Category" in line and "Impact" in line)
        assert header.startswith("    |")
        assert "5 (Critical) ⚠️" in text
        assert "3 (Important)" in text
        assert "Password is logged." in text

    def test_table_wraps_long_descriptions(self):
        long = Finding(Category.RESOURCES, " ".join(["word"] * 40), 3)
        text = render_report(_report([long]))
        rows = [line for line in text.splitlines() if "word" in line]
        assert len(rows) > 1
        assert all(line.count("word") * 5 <= TABLE_WRAP_WIDTH + 5 for line in rows)

    def test_simple_layout(self):
        text = render_report(_report([SECRET, NAMING]), simple=True)
        assert "- [Parameters] 5 (Critical): `adminPassword` is not marked @secure()." in text
        assert "- [Naming] 3 (Important): Storage account name is hardcoded." in text
        assert "```" not in text

    def test_simple_output_is_sorted_by_severity(self):
        text = render_report(_report([DESC, NAMING, SECRET]), simple=True)
        bullets = [line for line in text.splitlines() if line.startswith("- [")]
        assert [b.split("] ")[1][0] for b in bullets] == ["5", "3", "2"]

    def test_failed_and_degraded_categories_are_listed(self):
        statuses = {
            Category.PARAMETERS: CategoryStatus.ok(),
            Category.VARIABLES: CategoryStatus.failed("server_error: 503"),
            Category.OUTPUTS: CategoryStatus.degraded("no severity token"),
        }
        text = render_report(_report([NAMING], statuses))
        assert "**Warnings:**" in text
        assert "- **Variables** was not reviewed: server_error: 503" in text
        assert "- **Outputs** was only partially parsed: no severity token" in text

    def test_no_warnings_section_when_all_ok(self):
        assert "**Warnings:**" not in render_report(_report([NAMING]))

    def test_rendering_is_deterministic(self):
        report = _report([NAMING, SECRET, DESC])
        assert render_report(report, 2) == render_report(report, 2)


class TestRenderFindingComment:
    def test_full_comment(self):
        body = render_finding_comment(SECRET, "infra/main.bicep")
        assert body.startswith("### 🚨 Severity 5 (Critical): ")
        assert "**Category:** Parameters" in body
        assert "**Impact:** Password is logged." in body

    def test_impact_line_omitted_when_empty(self):
        assert "**Impact:**" not in render_finding_comment(DESC, "main.bicep")

    def test_simple_comment_is_one_line(self):
        body = render_finding_comment(NAMING, "main.bicep", simple=True)
        assert "\n" not in body
        assert body.startswith("⚡ **[Naming] 3 (Important)**")
