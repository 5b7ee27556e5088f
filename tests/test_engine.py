"""Tests for qgate.core.engine: scoring, history, rule management and the security audit."""

from __future__ import annotations

import pytest

from qgate.core.config import GateConfig
from qgate.core.constants import (
    CATEGORY_COMPLEXITY,
    CATEGORY_SECURITY,
    RULE_COMPLEXITY,
    RULE_DEPENDENCY_SECURITY,
    RULE_ENVIRONMENT_SECURITY,
    RULE_SECURITY,
)
from qgate.core.dependency_audit import AuditOutcome, Vulnerability
from qgate.core.engine import (
    GateEngine,
    calculate_quality_score,
    determine_status,
    security_recommendation,
)
from qgate.core.errors import AuditError, RuleNotFoundError
from qgate.core.message import set_enabled
from qgate.core.models import ValidationSummary
from qgate.core.rules import default_thresholds
from qgate.core.validators import Validator

GITIGNORE = "node_modules/\n.env\n.env.local\n*.key\n*.pem\nconfig/secrets.yml\n"

CLEAN_CODE = """\
/**
 * Adds two numbers.
 */
function addNumbers(a, b) {
  return a + b;
}
"""

SECRET_CODE = 'const API_KEY = "abcdefghijklmnop1234";\n'


class _FakeAuditor:
    def __init__(self, outcome=None, error=None):
        self.outcome = outcome or AuditOutcome(summary={})
        self.error = error

    def run(self):
        if self.error is not None:
            raise self.error
        return self.outcome


class _Boom(Validator):
    category = CATEGORY_COMPLEXITY

    def validate(self, code, rule, file_path):
        raise RuntimeError("validator exploded")


@pytest.fixture(autouse=True)
def _quiet():
    set_enabled(False)
    yield
    set_enabled(True)


@pytest.fixture
def project(tmp_path):
    (tmp_path / ".gitignore").write_text(GITIGNORE)
    return tmp_path


def _engine(root, auditor=None, config=None):
    auditor = auditor or _FakeAuditor()
    return GateEngine(
        config,
        str(root),
        auditor_factory=lambda pm: auditor,
        coverage_provider=lambda: None,
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def test_clean_code_scores_excellent(project):
    report = _engine(project).validate_code(CLEAN_CODE, "add.js")
    assert report.summary.total == 10
    assert report.summary.passed == 10
    assert report.quality_score == 100.0
    assert report.status == "excellent"
    assert report.recommendations == []
    assert report.error is None
    assert report.validation_time >= 0


def test_hardcoded_secret_fails_gate(project):
    report = _engine(project).validate_code(SECRET_CODE, "config.js")
    failed = {d.rule_id for d in report.details if not d.passed}
    assert failed == {RULE_SECURITY, RULE_ENVIRONMENT_SECURITY}
    assert report.summary.errors == 2
    assert report.summary.failed == 2
    assert report.quality_score == 60.0
    assert report.status == "failed"
    assert any("security vulnerabilities" in r for r in report.recommendations)
    assert report.recommendations[-1].startswith("Moderate quality improvements")


def test_warning_failures_do_not_fail_gate(project):
    engine = _engine(project)
    engine.update_rule("function-length", {"config": {"max_lines": 2}})
    report = engine.validate_code(CLEAN_CODE, "add.js")
    assert report.summary.warnings == 1
    assert report.summary.errors == 0
    assert report.quality_score == 88.0
    assert report.status == "good"


def test_no_enabled_rules_scores_zero(project):
    engine = _engine(project)
    for rule in list(engine.rules):
        engine.disable_rule(rule.id)
    report = engine.validate_code(CLEAN_CODE, "add.js")
    assert report.summary.total == 0
    assert report.quality_score == 0.0
    assert report.details == []

    forced = engine.validate_code(CLEAN_CODE, "add.js", force=True)
    assert forced.summary.total == 10


def test_score_is_clamped():
    summary = ValidationSummary(total=10, passed=0, failed=10, warnings=0, errors=10)
    assert calculate_quality_score(summary) == 0.0
    assert calculate_quality_score(ValidationSummary(total=3, passed=3)) == 100.0
    assert calculate_quality_score(ValidationSummary(total=3, passed=2, failed=1, warnings=1)) == 64.67


@pytest.mark.parametrize(
    ("score", "expected"),
    [(100.0, "excellent"), (95.0, "excellent"), (90.0, "good"), (70.0, "acceptable"), (69.99, "poor")],
)
def test_status_bands(score, expected):
    bands = default_thresholds()["quality-score"]
    assert determine_status(ValidationSummary(total=1, passed=1), score, bands) == expected


def test_errors_force_failed_status():
    summary = ValidationSummary(total=1, failed=1, errors=1)
    assert determine_status(summary, 100.0, default_thresholds()["quality-score"]) == "failed"


def test_validation_is_repeatable(project):
    engine = _engine(project)
    first = engine.validate_code(SECRET_CODE, "config.js")
    second = engine.validate_code(SECRET_CODE, "config.js")
    assert first.summary == second.summary
    assert first.quality_score == second.quality_score
    assert [d.passed for d in first.details] == [d.passed for d in second.details]


def test_validator_exception_yields_error_report(project):
    engine = _engine(project)
    engine.registry.register(_Boom())
    report = engine.validate_code(CLEAN_CODE, "add.js")
    assert report.status == "error"
    assert report.error == "validator exploded"
    assert engine.get_validation_history() == []


# ---------------------------------------------------------------------------
# History & trends
# ---------------------------------------------------------------------------


def test_history_is_capped(project):
    engine = _engine(project)
    for i in range(101):
        engine.validate_code(CLEAN_CODE, f"f{i}.js")
    history = engine.get_validation_history(limit=1000)
    assert len(history) == 100
    assert history[0].file_path == "f1.js"
    assert history[-1].file_path == "f100.js"


def test_history_limit_from_config(project):
    config = GateConfig(history={"limit": 2})
    engine = _engine(project, config=config)
    for name in ("a.js", "b.js", "c.js"):
        engine.validate_code(CLEAN_CODE, name)
    assert [r.file_path for r in engine.get_validation_history()] == ["b.js", "c.js"]


def test_history_filter_and_limit(project):
    engine = _engine(project)
    for name in ("a.js", "b.js", "a.js", "a.js"):
        engine.validate_code(CLEAN_CODE, name)
    only_a = engine.get_validation_history("a.js")
    assert len(only_a) == 3
    assert all(r.file_path == "a.js" for r in only_a)
    assert len(engine.get_validation_history(limit=2)) == 2
    assert engine.get_validation_history(limit=2)[-1].file_path == "a.js"
    assert engine.get_validation_history(limit=0) == []
    assert engine.get_validation_history("missing.js") == []


def test_quality_trends_follow_history(project):
    engine = _engine(project)
    engine.validate_code(CLEAN_CODE, "a.js")
    engine.validate_code(SECRET_CODE, "b.js")
    (point,) = engine.get_quality_trends("1d")
    assert point.total_validations == 2
    assert point.average_score == 80.0
    assert point.status_distribution == {"excellent": 1, "failed": 1}


# ---------------------------------------------------------------------------
# Rule management
# ---------------------------------------------------------------------------


def test_disabled_rule_is_skipped(project):
    engine = _engine(project)
    engine.disable_rule(RULE_SECURITY)
    engine.disable_rule(RULE_ENVIRONMENT_SECURITY)
    report = engine.validate_code(SECRET_CODE, "config.js")
    assert report.summary.total == 8
    assert report.status == "excellent"

    engine.enable_rule(RULE_SECURITY)
    assert engine.validate_code(SECRET_CODE, "config.js").status == "failed"


def test_config_rule_overrides_merge_into_defaults(project):
    config = GateConfig(rules={RULE_COMPLEXITY: {"severity": "warning", "config": {"max_complexity": 3}}})
    engine = _engine(project, config=config)
    rule = engine.get_rule(RULE_COMPLEXITY)
    assert rule.severity == "warning"
    assert rule.config == {"max_complexity": 3}
    engine_dep = engine.get_rule(RULE_DEPENDENCY_SECURITY)
    assert engine_dep.config["package_manager"] == "pnpm"


def test_config_override_for_unknown_rule_raises(project):
    with pytest.raises(RuleNotFoundError):
        _engine(project, config=GateConfig(rules={"ghost": {"enabled": False}}))


def test_export_import_roundtrip_between_engines(project):
    source = _engine(project)
    source.disable_rule(RULE_SECURITY)
    target = _engine(project)
    target.import_configuration(source.export_configuration())
    assert target.get_rule(RULE_SECURITY).enabled is False


# ---------------------------------------------------------------------------
# Security audit
# ---------------------------------------------------------------------------


def test_audit_passes_on_clean_project(project):
    report = _engine(project).run_security_audit()
    assert report.status == "passed"
    assert report.summary.total_issues == 0
    assert report.errors == []


def test_audit_fails_without_gitignore(tmp_path):
    report = _engine(tmp_path).run_security_audit()
    assert report.status == "failed"
    (issue,) = report.issues
    assert issue.type == "missing_gitignore"
    assert issue.severity == "critical"
    assert issue.rule == RULE_ENVIRONMENT_SECURITY
    assert issue.recommendation == "Create .gitignore file with appropriate security entries"
    assert "Address all critical security issues immediately before deployment" in report.recommendations


def test_audit_warns_on_high_dependency_vulnerability(project):
    outcome = AuditOutcome(
        vulnerabilities=[Vulnerability(package="lodash", severity="high", version="4.17.0", title="Pollution")],
        total=1,
        summary={"high": 1},
    )
    report = _engine(project, auditor=_FakeAuditor(outcome)).run_security_audit()
    assert report.status == "warning"
    assert report.summary.high == 1
    (issue,) = report.issues
    assert issue.type == "dependency_vulnerability"
    assert issue.description == "lodash@4.17.0: Pollution"
    assert issue.file == "N/A"
    assert "Regularly update dependencies and monitor security advisories" in report.recommendations


def test_audit_scans_given_code(project):
    report = _engine(project).run_security_audit(SECRET_CODE, "config.js")
    assert report.status == "failed"
    types = {i.type for i in report.issues}
    assert {"hardcoded_secret", "hardcoded_env_var"} <= types
    assert all(i.file == "config.js" for i in report.issues if i.type == "hardcoded_secret")


def test_audit_records_collaborator_errors(project):
    auditor = _FakeAuditor(error=AuditError("pnpm not found", reason="missing"))
    report = _engine(project, auditor=auditor).run_security_audit()
    assert report.status == "passed"
    (error,) = report.errors
    assert error.startswith(f"{RULE_DEPENDENCY_SECURITY}: Failed to run dependency audit")


def test_audit_exception_sets_error_status(project):
    class _Broken(Validator):
        category = CATEGORY_SECURITY

        def validate(self, code, rule, file_path):
            raise RuntimeError("scanner down")

    engine = _engine(project)
    engine.registry.register(_Broken())
    report = engine.run_security_audit()
    assert report.status == "error"
    assert report.error == "scanner down"


def test_unknown_issue_type_gets_generic_recommendation():
    assert security_recommendation("mystery") == "Review security best practices for this issue type"
    assert security_recommendation("sql_injection") == "Use parameterized queries or prepared statements"


def test_unreadable_gitignore_gets_specific_recommendation(tmp_path):
    (tmp_path / ".gitignore").mkdir()
    report = _engine(tmp_path).run_security_audit()
    (issue,) = report.issues
    assert issue.type == "gitignore_read_error"
    assert issue.severity == "low"
    assert issue.recommendation == "Make .gitignore readable so its security entries can be verified"
    assert report.status == "passed"


def test_skipped_dependency_check_is_visible_but_keeps_status(project):
    auditor = _FakeAuditor(error=AuditError("audit timed out", reason="timeout"))
    report = _engine(project, auditor=auditor).run_security_audit()
    assert report.status == "passed"
    assert report.summary.total_issues == 0
    assert len(report.errors) == 1
    assert "audit timed out" in report.errors[0]
