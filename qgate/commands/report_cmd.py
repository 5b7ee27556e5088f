"""Terminal rendering for validation and security audit reports.

Report values are printed as ``Text``, never as console markup: file paths
and advisory titles may contain square brackets.
"""

from __future__ import annotations

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.constants import STATUS_ERROR, STATUS_FAILED, STATUS_PASSED, STATUS_POOR, STATUS_WARNING
from ..core.models import SecurityAuditReport, ValidationReport

_STATUS_STYLES = {
    "excellent": "bold green",
    "good": "green",
    "acceptable": "yellow",
    STATUS_POOR: "bold yellow",
    STATUS_FAILED: "bold red",
    STATUS_ERROR: "bold red",
    STATUS_PASSED: "bold green",
    STATUS_WARNING: "bold yellow",
}

_SEVERITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}


def _status_text(status: str) -> Text:
    return Text(status.upper(), style=_STATUS_STYLES.get(status, "bold"))


def render_validation(report: ValidationReport, console: Console) -> None:
    header = Text.assemble(
        ("Quality Score: ", "bold"),
        f"{report.quality_score}/100   ",
        ("Status: ", "bold"),
        _status_text(report.status),
    )
    console.print(Panel(header, title=Text(f"Validation Results for {report.file_path}"), box=ROUNDED))
    if report.error:
        console.print(Text(f"Error: {report.error}", style="bold red"))
        return

    s = report.summary
    console.print(Text(f"Passed: {s.passed}, Failed: {s.failed} ({s.errors} error(s), {s.warnings} warning(s))"))
    failing = [d for d in report.details if not d.passed]
    if failing:
        table = Table(box=ROUNDED, show_header=True, header_style="bold")
        table.add_column("Rule")
        table.add_column("Category")
        table.add_column("Severity")
        table.add_column("Findings", justify="right")
        for d in failing:
            findings = len(d.details.get("violations") or d.details.get("vulnerabilities") or d.details.get("issues") or [])
            table.add_row(Text(d.rule_name), Text(d.category), Text(d.severity), Text(str(findings)))
        console.print(table)
    if report.recommendations:
        console.print(Text("Recommendations:", style="bold"))
        for i, rec in enumerate(report.recommendations, 1):
            console.print(Text(f"{i}. {rec}"))
    console.print(Text(f"Completed in {report.validation_time:.2f}ms", style="dim"))


def render_audit(report: SecurityAuditReport, console: Console) -> None:
    s = report.summary
    header = Text.assemble(("Status: ", "bold"), _status_text(report.status), f"   Total Issues: {s.total_issues}")
    console.print(Panel(header, title="Security Audit Report", box=ROUNDED))
    if report.error:
        console.print(Text(f"Error: {report.error}", style="bold red"))
        return
    console.print(Text(f"Critical: {s.critical} | High: {s.high} | Medium: {s.medium} | Low: {s.low}"))

    if report.issues:
        console.print(Text("Issues Found:", style="bold"))
        for i, issue in enumerate(report.issues, 1):
            console.print(
                Text.assemble(f"\n{i}. ", (issue.type.upper(), "bold"), " (", (issue.severity, _SEVERITY_STYLES[issue.severity]), ")")
            )
            console.print(Text(f"   Description: {issue.description}"))
            console.print(Text(f"   File: {issue.file}:{issue.line}"))
            console.print(Text(f"   Recommendation: {issue.recommendation}"))
    for err in report.errors:
        console.print(Text(f"Check could not complete: {err}", style="yellow"))
    if report.recommendations:
        console.print(Text("\nRecommendations:", style="bold"))
        for i, rec in enumerate(report.recommendations, 1):
            console.print(Text(f"{i}. {rec}"))
