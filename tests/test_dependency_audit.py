"""Tests for dependency audit parsing, the package-manager auditor and its validator."""

from __future__ import annotations

import json
import subprocess
from unittest.mock import patch

import pytest

from qgate.core.constants import RULE_DEPENDENCY_SECURITY
from qgate.core.dependency_audit import (
    AuditOutcome,
    DependencySecurityValidator,
    PackageManagerAuditor,
    Vulnerability,
    parse_audit_output,
)
from qgate.core.errors import AuditError
from qgate.core.models import Rule
from qgate.core.rules import RuleCatalog

NPM_OUTPUT = json.dumps(
    {
        "auditReportVersion": 2,
        "vulnerabilities": {
            "lodash": {
                "name": "lodash",
                "severity": "high",
                "via": [{"title": "Prototype Pollution", "url": "https://example.test/GHSA-1"}],
                "range": "<4.17.21",
                "fixAvailable": {"name": "lodash", "version": "4.17.21"},
            },
            "minimist": {"name": "minimist", "severity": "moderate", "via": ["mkdirp"], "range": "<1.2.6"},
        },
        "metadata": {"vulnerabilities": {"info": 0, "low": 0, "moderate": 1, "high": 1, "critical": 0, "total": 2}},
    }
)

PNPM_OUTPUT = json.dumps(
    {
        "advisories": {
            "1096": {
                "module_name": "axios",
                "severity": "critical",
                "title": "SSRF",
                "overview": "Server-side request forgery",
                "patched_versions": ">=0.21.1",
                "findings": [{"version": "0.21.0", "paths": ["axios"]}],
            }
        },
        "metadata": {"vulnerabilities": {"low": 0, "moderate": 0, "high": 0, "critical": 1}},
    }
)

YARN_OUTPUT = "\n".join(
    [
        json.dumps(
            {
                "type": "auditAdvisory",
                "data": {
                    "advisory": {
                        "module_name": "minimatch",
                        "severity": "high",
                        "title": "ReDoS",
                        "overview": "Regular expression denial of service",
                        "patched_versions": ">=3.0.5",
                        "findings": [{"version": "3.0.4"}],
                    }
                },
            }
        ),
        json.dumps({"type": "auditSummary", "data": {"vulnerabilities": {"low": 0, "high": 1, "critical": 0}}}),
    ]
)


def _rule(**config) -> Rule:
    catalog = RuleCatalog()
    rule = catalog.get_rule(RULE_DEPENDENCY_SECURITY)
    assert rule is not None
    if config:
        rule = catalog.update_rule(RULE_DEPENDENCY_SECURITY, {"config": {**rule.config, **config}})
    return rule


class _FakeAuditor:
    def __init__(self, outcome: AuditOutcome | None = None, error: AuditError | None = None):
        self.outcome = outcome or AuditOutcome()
        self.error = error

    def run(self) -> AuditOutcome:
        if self.error is not None:
            raise self.error
        return self.outcome


def _validator(auditor: _FakeAuditor, seen: list[str] | None = None) -> DependencySecurityValidator:
    def factory(package_manager: str) -> _FakeAuditor:
        if seen is not None:
            seen.append(package_manager)
        return auditor

    return DependencySecurityValidator(factory)


MIXED = AuditOutcome(
    vulnerabilities=[
        Vulnerability(package="lodash", severity="high", version="4.17.20", title="Prototype Pollution"),
        Vulnerability(package="axios", severity="critical", version="0.21.0", title="SSRF"),
        Vulnerability(package="minimist", severity="moderate", version="1.2.5"),
    ],
    total=3,
)


# ── parse_audit_output ──────────────────────────────────────────────


def test_parse_npm_vulnerability_map():
    outcome = parse_audit_output(NPM_OUTPUT)
    assert outcome.total == 2
    by_name = {v.package: v for v in outcome.vulnerabilities}
    assert by_name["lodash"].severity == "high"
    assert by_name["lodash"].title == "Prototype Pollution"
    assert by_name["lodash"].patched_in == "4.17.21"
    assert by_name["minimist"].severity == "moderate"
    assert outcome.summary["high"] == 1


def test_parse_pnpm_advisories():
    outcome = parse_audit_output(PNPM_OUTPUT)
    (vuln,) = outcome.vulnerabilities
    assert vuln.package == "axios"
    assert vuln.severity == "critical"
    assert vuln.version == "0.21.0"
    assert vuln.patched_in == ">=0.21.1"
    assert outcome.total == 1


def test_parse_yarn_ndjson():
    outcome = parse_audit_output(YARN_OUTPUT)
    (vuln,) = outcome.vulnerabilities
    assert vuln.package == "minimatch"
    assert vuln.severity == "high"
    assert outcome.total == 1


def test_parse_empty_output_raises():
    with pytest.raises(AuditError) as exc_info:
        parse_audit_output("   ")
    assert exc_info.value.reason == "parse"


def test_parse_garbage_raises():
    with pytest.raises(AuditError, match="Failed to parse audit output"):
        parse_audit_output("ERR_PNPM_AUDIT_NO_LOCKFILE  No pnpm-lock.yaml found")


# ── PackageManagerAuditor ───────────────────────────────────────────


@patch("qgate.core.dependency_audit.subprocess.run")
def test_auditor_parses_stdout_of_failing_exit(mock_run, tmp_path):
    mock_run.return_value = subprocess.CompletedProcess(("npm", "audit", "--json"), 1, stdout=NPM_OUTPUT, stderr="")
    outcome = PackageManagerAuditor("npm", str(tmp_path), timeout=5).run()
    assert len(outcome.vulnerabilities) == 2
    args, kwargs = mock_run.call_args
    assert args[0] == ("npm", "audit", "--json")
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["timeout"] == 5


@patch("qgate.core.dependency_audit.subprocess.run", side_effect=FileNotFoundError("pnpm"))
def test_auditor_missing_tool(_mock_run):
    with pytest.raises(AuditError) as exc_info:
        PackageManagerAuditor("pnpm").run()
    assert exc_info.value.reason == "missing"


@patch(
    "qgate.core.dependency_audit.subprocess.run",
    side_effect=subprocess.TimeoutExpired(cmd="yarn audit --json", timeout=3),
)
def test_auditor_timeout(_mock_run):
    with pytest.raises(AuditError) as exc_info:
        PackageManagerAuditor("yarn", timeout=3).run()
    assert exc_info.value.reason == "timeout"


@patch("qgate.core.dependency_audit.subprocess.run")
def test_auditor_failing_exit_without_output(mock_run):
    mock_run.return_value = subprocess.CompletedProcess(("pnpm",), 2, stdout="", stderr="boom")
    with pytest.raises(AuditError, match="boom"):
        PackageManagerAuditor("pnpm").run()


def test_auditor_rejects_unknown_package_manager():
    with pytest.raises(AuditError, match="Unsupported package manager"):
        PackageManagerAuditor("bower").run()


# ── DependencySecurityValidator ─────────────────────────────────────


def test_validator_flags_high_and_critical_only():
    seen: list[str] = []
    result = _validator(_FakeAuditor(MIXED), seen).validate("", _rule(), "/proj")
    assert not result.passed
    flagged = {v["package"]: v for v in result.details["vulnerabilities"]}
    assert set(flagged) == {"lodash", "axios"}
    assert flagged["axios"]["type"] == "dependency_vulnerability"
    assert result.details["total_vulnerabilities"] == 3
    assert seen == ["pnpm"]


def test_validator_respects_fail_on_flags():
    result = _validator(_FakeAuditor(MIXED)).validate("", _rule(fail_on_high_severity=False), "/proj")
    assert [v["package"] for v in result.details["vulnerabilities"]] == ["axios"]


def test_validator_allowlist_and_limits():
    rule = _rule(allowlist=["axios"], max_high_severity_vulns=1)
    result = _validator(_FakeAuditor(MIXED)).validate("", rule, "/proj")
    assert result.passed
    assert [v["package"] for v in result.details["vulnerabilities"]] == ["lodash"]


def test_validator_clean_audit_passes():
    assert _validator(_FakeAuditor()).validate("", _rule(), "/proj").passed


def test_validator_audit_failure_is_explicit_error():
    auditor = _FakeAuditor(error=AuditError("command not found: pnpm", reason="missing"))
    result = _validator(auditor).validate("", _rule(), "/proj")
    assert not result.passed
    assert result.details["error"].startswith("Failed to run dependency audit")
    assert result.details["vulnerabilities"] == []


def test_package_manager_override_wins_over_rule():
    seen: list[str] = []

    def factory(package_manager: str) -> _FakeAuditor:
        seen.append(package_manager)
        return _FakeAuditor()

    DependencySecurityValidator(factory, package_manager="npm").validate("", _rule(), "/proj")
    assert seen == ["npm"]
