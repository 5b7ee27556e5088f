"""Quality gate engine: runs enabled rules, scores the result and keeps history."""

from __future__ import annotations

import logging
import os
import time
from datetime import UTC, datetime
from typing import Any

from .config import ConfigManager, GateConfig
from .constants import (
    CATEGORY_ACCESSIBILITY,
    CATEGORY_COMPLEXITY,
    CATEGORY_DEPENDENCY_SECURITY,
    CATEGORY_DOCUMENTATION,
    CATEGORY_ENVIRONMENT_SECURITY,
    CATEGORY_PERFORMANCE,
    CATEGORY_SECURITY,
    CATEGORY_STRUCTURE,
    CATEGORY_STYLE,
    CATEGORY_TESTING,
    ERROR_PENALTY,
    SECURITY_RULES,
    SEVERITY_ERROR,
    STATUS_ACCEPTABLE,
    STATUS_ERROR,
    STATUS_EXCELLENT,
    STATUS_FAILED,
    STATUS_GOOD,
    STATUS_PASSED,
    STATUS_POOR,
    STATUS_WARNING,
    THRESHOLD_QUALITY_SCORE,
    WARNING_PENALTY,
)
from .dependency_audit import AuditorFactory, DependencySecurityValidator
from .message import M, emit
from .metrics import MetricsTracker
from .models import (
    AuditSummary,
    Rule,
    SecurityAuditReport,
    SecurityIssue,
    TrendPoint,
    ValidationReport,
    ValidationSummary,
)
from .rules import RuleCatalog
from .security import EnvironmentSecurityValidator, SecurityValidator
from .validators import (
    AccessibilityValidator,
    AltTextChecker,
    ComplexityValidator,
    CoverageProvider,
    DocumentationValidator,
    ExecutionTimer,
    PerformanceValidator,
    StructureValidator,
    StyleValidator,
    TestingValidator,
    ValidatorRegistry,
    env_coverage_provider,
)

logger = logging.getLogger(__name__)

_CATEGORY_RECOMMENDATIONS: dict[str, str] = {
    CATEGORY_COMPLEXITY: "Consider breaking down complex functions into smaller, more focused units",
    CATEGORY_STRUCTURE: "Split long functions so each one fits on a screen",
    CATEGORY_STYLE: "Rename identifiers to follow the configured naming conventions",
    CATEGORY_DOCUMENTATION: "Improve documentation coverage by adding JSDoc comments and README updates",
    CATEGORY_TESTING: "Increase test coverage by adding unit tests for uncovered code paths",
    CATEGORY_SECURITY: "Address security vulnerabilities by implementing proper input validation and sanitization",
    CATEGORY_DEPENDENCY_SECURITY: "Update or replace dependencies with known high or critical vulnerabilities",
    CATEGORY_ENVIRONMENT_SECURITY: "Move secrets out of source and env files and tighten .gitignore coverage",
    CATEGORY_PERFORMANCE: "Optimize performance by reviewing execution paths and memory usage patterns",
    CATEGORY_ACCESSIBILITY: "Improve accessibility by adding proper ARIA labels and keyboard navigation",
}

_SECURITY_RECOMMENDATIONS: dict[str, str] = {
    "hardcoded_secret": "Move sensitive data to environment variables and use proper secret management",
    "sql_injection": "Use parameterized queries or prepared statements",
    "xss_vulnerability": "Sanitize user input and use proper output encoding",
    "csrf_vulnerability": "Implement CSRF tokens for state-changing operations",
    "dependency_vulnerability": "Update vulnerable dependencies to patched versions",
    "hardcoded_env_var": "Use environment variables instead of hardcoded values",
    "sensitive_env_file": "Ensure environment files are properly secured and not committed",
    "missing_gitignore_entry": "Add sensitive file patterns to .gitignore",
    "missing_gitignore": "Create .gitignore file with appropriate security entries",
    "gitignore_read_error": "Make .gitignore readable so its security entries can be verified",
    "sensitive_env_file_read_error": "Check permissions on environment files so they can be scanned",
}
_DEFAULT_SECURITY_RECOMMENDATION = "Review security best practices for this issue type"

_SEVERITY_ALIASES = {"moderate": "medium", "info": "low", "warning": "medium"}


# ── Scoring helpers ──────────────────────────────────────────────────


def calculate_quality_score(summary: ValidationSummary) -> float:
    """Pass ratio as a percentage minus 10 per failed error rule and 2 per failed warning rule, clamped to 0-100."""
    if summary.total == 0:
        return 0.0
    base = summary.passed / summary.total * 100
    score = base - summary.errors * ERROR_PENALTY - summary.warnings * WARNING_PENALTY
    return round(max(0.0, min(100.0, score)), 2)


def determine_status(summary: ValidationSummary, score: float, bands: dict[str, float]) -> str:
    if summary.errors > 0:
        return STATUS_FAILED
    if score >= bands.get("excellent", 95):
        return STATUS_EXCELLENT
    if score >= bands.get("good", 85):
        return STATUS_GOOD
    if score >= bands.get("acceptable", 70):
        return STATUS_ACCEPTABLE
    return STATUS_POOR


def generate_recommendations(report: ValidationReport) -> list[str]:
    failed = report.failed_categories
    recs = [msg for category, msg in _CATEGORY_RECOMMENDATIONS.items() if category in failed]
    score = report.quality_score
    if score < 50:
        recs.append("Significant quality improvements needed - consider code review and refactoring")
    elif score < 70:
        recs.append("Moderate quality improvements recommended - focus on critical issues first")
    elif score < 85:
        recs.append("Good quality baseline - consider minor improvements for excellence")
    return recs


def security_recommendation(issue_type: str) -> str:
    return _SECURITY_RECOMMENDATIONS.get(issue_type, _DEFAULT_SECURITY_RECOMMENDATION)


def _normalise_severity(raw: Any) -> str:
    sev = str(raw or "low").lower()
    sev = _SEVERITY_ALIASES.get(sev, sev)
    return sev if sev in ("critical", "high", "medium", "low") else "low"


def build_default_registry(
    config: GateConfig,
    project_root: str | None = None,
    auditor_factory: AuditorFactory | None = None,
    coverage_provider: CoverageProvider | None = None,
    timer: ExecutionTimer | None = None,
    alt_text_checker: AltTextChecker | None = None,
) -> ValidatorRegistry:
    return ValidatorRegistry(
        [
            ComplexityValidator(),
            StructureValidator(),
            StyleValidator(),
            DocumentationValidator(),
            TestingValidator(coverage_provider or env_coverage_provider(config.testing.coverage_env_var)),
            SecurityValidator(),
            DependencySecurityValidator(
                auditor_factory,
                project_root=project_root,
                timeout=config.audit.timeout,
                package_manager=config.audit.package_manager,
            ),
            EnvironmentSecurityValidator(project_root),
            PerformanceValidator(timer),
            AccessibilityValidator(alt_text_checker),
        ]
    )


# ── GateEngine ───────────────────────────────────────────────────────


class GateEngine:
    """One quality gate: a rule catalog, a validator registry, history and trends.

    Construct one per process and pass it around; nothing is shared between
    instances. History and metrics are plain lists/dicts and expect a single
    thread of control.
    """

    def __init__(
        self,
        config: GateConfig | None = None,
        project_root: str | None = None,
        *,
        catalog: RuleCatalog | None = None,
        registry: ValidatorRegistry | None = None,
        metrics: MetricsTracker | None = None,
        auditor_factory: AuditorFactory | None = None,
        coverage_provider: CoverageProvider | None = None,
        timer: ExecutionTimer | None = None,
        alt_text_checker: AltTextChecker | None = None,
    ):
        self.config = config or GateConfig()
        self.project_root = project_root or os.getcwd()
        self.rules = catalog or RuleCatalog()
        self._apply_rule_overrides(self.config.rules)
        self.registry = registry or build_default_registry(
            self.config,
            self.project_root,
            auditor_factory=auditor_factory,
            coverage_provider=coverage_provider,
            timer=timer,
            alt_text_checker=alt_text_checker,
        )
        self.metrics = metrics or MetricsTracker(
            retention_days=self.config.metrics.retention_days,
            measurement_limit=self.config.metrics.measurement_limit,
        )
        self._history: list[ValidationReport] = []

    @classmethod
    def from_project(cls, project_root: str = ".", **kwargs: Any) -> GateEngine:
        """Build an engine from ``<project_root>/.qgate/config.yaml`` and QGATE_* overrides."""
        root = os.path.abspath(project_root)
        config = ConfigManager(root).load_config()
        return cls(config, root, **kwargs)

    def _apply_rule_overrides(self, overrides: dict[str, dict[str, Any]]) -> None:
        for rule_id, updates in overrides.items():
            updates = dict(updates)
            rule = self.rules.get_rule(rule_id)
            if rule is not None and isinstance(updates.get("config"), dict):
                updates["config"] = {**rule.config, **updates["config"]}
            self.rules.update_rule(rule_id, updates)

    # ── Validation ──

    def validate_code(self, code: str, file_path: str, force: bool = False) -> ValidationReport:
        """Run every enabled rule (all rules with *force*) against *code*.

        Never raises for validator failures: an ``error``-status report is
        returned instead and is not added to history.
        """
        start = time.perf_counter()
        emit(M.QRUN, f"Running quality gate validation for: {file_path}")
        try:
            report = self._run_rules(code, file_path, force)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("Quality gate validation failed for %s", file_path)
            emit(M.QFAL, f"Quality gate validation failed: {e}")
            return ValidationReport(
                file_path=file_path,
                timestamp=datetime.now(UTC).isoformat(),
                status=STATUS_ERROR,
                error=str(e),
                validation_time=elapsed,
            )
        report.validation_time = (time.perf_counter() - start) * 1000
        self._record(report)
        emit(
            M.QFAL if report.status == STATUS_FAILED else M.QPAS,
            f"Quality gate validation completed in {report.validation_time:.2f}ms",
        )
        emit(M.QRPT, f"Quality Score: {report.quality_score}/100 ({report.status})")
        return report

    def _run_rules(self, code: str, file_path: str, force: bool) -> ValidationReport:
        details = []
        passed = errors = warnings = 0
        for rule in self.rules:
            if not rule.enabled and not force:
                continue
            validator = self.registry.get(rule.category)
            if validator is None:
                logger.debug("No validator registered for category %s; skipping %s", rule.category, rule.id)
                continue
            result = validator.validate(code, rule, file_path)
            details.append(result)
            if result.passed:
                passed += 1
            elif rule.severity == SEVERITY_ERROR:
                errors += 1
            else:
                warnings += 1
            emit(M.QVAL, f"  [{'PASS' if result.passed else 'FAIL'}] {rule.id}")

        summary = ValidationSummary(
            total=len(details), passed=passed, failed=errors + warnings, warnings=warnings, errors=errors
        )
        score = calculate_quality_score(summary)
        report = ValidationReport(
            file_path=file_path,
            timestamp=datetime.now(UTC).isoformat(),
            summary=summary,
            details=details,
            quality_score=score,
            status=determine_status(summary, score, self.rules.thresholds.get(THRESHOLD_QUALITY_SCORE, {})),
        )
        report.recommendations = generate_recommendations(report)
        return report

    def _record(self, report: ValidationReport) -> None:
        self._history.append(report)
        limit = self.config.history.limit
        if len(self._history) > limit:
            self._history = self._history[-limit:]
        self.metrics.record(report)

    # ── Security audit ──

    def run_security_audit(self, code: str = "", file_path: str | None = None) -> SecurityAuditReport:
        """Run only the security rules and return an issue-centric report.

        *code* is scanned by the source-level security rule when given; the
        dependency and environment rules always look at the project root.

        Status depends on issue severities only. A check that could not run
        (audit tool missing, timed out or unparseable) is listed in
        ``errors`` and does not move the status, so a ``passed`` report with
        non-empty ``errors`` means that check was not performed.
        """
        report = SecurityAuditReport(timestamp=datetime.now(UTC).isoformat())
        emit(M.AUDT, f"Running security audit in {self.project_root}")
        try:
            for rule_id in SECURITY_RULES:
                rule = self.rules.get_rule(rule_id)
                if rule is None or not rule.enabled:
                    continue
                validator = self.registry.get(rule.category)
                if validator is None:
                    continue
                result = validator.validate(code, rule, file_path or self.project_root)
                if result.details.get("error"):
                    report.errors.append(f"{rule_id}: {result.details['error']}")
                    emit(M.SWRN, f"{rule_id} could not complete: {result.details['error']}", truncate=200)
                self._collect_issues(report, rule, result.details)

            for issue in report.issues:
                report.summary.total_issues += 1
                setattr(report.summary, issue.severity, getattr(report.summary, issue.severity) + 1)
            report.recommendations = self._security_recommendations(report)
            if report.summary.critical > 0:
                report.status = STATUS_FAILED
            elif report.summary.high > 0:
                report.status = STATUS_WARNING
            else:
                report.status = STATUS_PASSED
        except Exception as e:
            logger.exception("Security audit failed")
            report.status = STATUS_ERROR
            report.error = str(e)
            return report

        emit(M.AISS, f"Security audit {report.status}: {report.summary.total_issues} issue(s)")
        return report

    @staticmethod
    def _collect_issues(report: SecurityAuditReport, rule: Rule, details: dict[str, Any]) -> None:
        for item in [*details.get("vulnerabilities", []), *details.get("issues", [])]:
            issue_type = str(item.get("type", "unknown"))
            report.issues.append(
                SecurityIssue(
                    rule=rule.id,
                    type=issue_type,
                    severity=_normalise_severity(item.get("severity")),
                    description=str(item.get("description", "")),
                    file=str(item.get("file") or "N/A"),
                    line=int(item.get("line") or 0),
                    recommendation=security_recommendation(issue_type),
                )
            )

    @staticmethod
    def _security_recommendations(report: SecurityAuditReport) -> list[str]:
        types = {i.type for i in report.issues}
        recs = []
        if report.summary.critical > 0:
            recs.append("Address all critical security issues immediately before deployment")
        if report.summary.high > 0:
            recs.append("Prioritize fixing high-severity security vulnerabilities")
        if "hardcoded_secret" in types:
            recs.append("Implement proper secret management using environment variables")
        if "dependency_vulnerability" in types:
            recs.append("Regularly update dependencies and monitor security advisories")
        if types & {"missing_gitignore", "missing_gitignore_entry"}:
            recs.append("Review and update .gitignore to prevent sensitive file commits")
        return recs

    # ── History & trends ──

    def get_validation_history(self, file_path: str | None = None, limit: int = 10) -> list[ValidationReport]:
        history = self._history
        if file_path:
            history = [r for r in history if r.file_path == file_path]
        if limit <= 0:
            return []
        return history[-limit:]

    def get_quality_trends(self, time_range: str | int = "7d") -> list[TrendPoint]:
        return self.metrics.get_trends(time_range)

    # ── Rule management ──

    def get_rule(self, rule_id: str) -> Rule | None:
        return self.rules.get_rule(rule_id)

    def update_rule(self, rule_id: str, updates: dict[str, Any]) -> Rule:
        return self.rules.update_rule(rule_id, updates)

    def enable_rule(self, rule_id: str) -> Rule:
        return self.rules.enable_rule(rule_id)

    def disable_rule(self, rule_id: str) -> Rule:
        return self.rules.disable_rule(rule_id)

    def export_configuration(self) -> dict[str, Any]:
        return self.rules.export_configuration()

    def import_configuration(self, snapshot: dict[str, Any]) -> None:
        self.rules.import_configuration(snapshot)
