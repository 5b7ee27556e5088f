"""Dependency auditing through the package manager's own audit command.

The validator only sees ``DependencyAuditor.run()`` and a normalised list of
vulnerabilities, so the tool family can be swapped without touching the
engine.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from .constants import CATEGORY_DEPENDENCY_SECURITY, SUBPROCESS_TIMEOUT
from .errors import AuditError
from .models import Rule, ValidationResult
from .validators import Validator

logger = logging.getLogger(__name__)

AUDIT_COMMANDS: dict[str, tuple[str, ...]] = {
    "npm": ("npm", "audit", "--json"),
    "yarn": ("yarn", "audit", "--json"),
    "pnpm": ("pnpm", "audit", "--json"),
}


@dataclass
class Vulnerability:
    package: str
    severity: str = "unknown"
    version: str = ""
    title: str = "Unknown vulnerability"
    description: str = "No description available"
    patched_in: str = "Not available"


@dataclass
class AuditOutcome:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    total: int = 0
    summary: dict[str, Any] | str = "No audit results available"


class DependencyAuditor(Protocol):
    def run(self) -> AuditOutcome: ...


# ── Output normalisation ─────────────────────────────────────────────


def _from_npm_entry(name: str, entry: dict[str, Any]) -> Vulnerability:
    via = entry.get("via") or []
    advisory = next((v for v in via if isinstance(v, dict)), {})
    fix = entry.get("fixAvailable")
    patched = fix.get("version") if isinstance(fix, dict) else None
    return Vulnerability(
        package=name,
        severity=str(entry.get("severity", "unknown")).lower(),
        version=str(entry.get("version") or entry.get("range") or ""),
        title=str(advisory.get("title") or entry.get("title") or "Unknown vulnerability"),
        description=str(advisory.get("url") or entry.get("description") or "No description available"),
        patched_in=str(patched or entry.get("patchedIn") or "Not available"),
    )


def _from_advisory(advisory: dict[str, Any]) -> Vulnerability:
    findings = advisory.get("findings") or []
    version = ""
    if findings and isinstance(findings[0], dict):
        version = str(findings[0].get("version", ""))
    return Vulnerability(
        package=str(advisory.get("module_name", "unknown")),
        severity=str(advisory.get("severity", "unknown")).lower(),
        version=version,
        title=str(advisory.get("title") or "Unknown vulnerability"),
        description=str(advisory.get("overview") or "No description available"),
        patched_in=str(advisory.get("patched_versions") or "Not available"),
    )


def _summary_total(summary: dict[str, Any], fallback: int) -> int:
    if "total" in summary:
        try:
            return int(summary["total"])
        except (TypeError, ValueError):
            return fallback
    counts = [v for v in summary.values() if isinstance(v, int)]
    return sum(counts) if counts else fallback


def _parse_document(data: dict[str, Any]) -> AuditOutcome:
    vulns: list[Vulnerability] = []
    if isinstance(data.get("vulnerabilities"), dict):
        for name, entry in data["vulnerabilities"].items():
            if isinstance(entry, dict):
                vulns.append(_from_npm_entry(name, entry))
    if isinstance(data.get("advisories"), dict):
        for advisory in data["advisories"].values():
            if isinstance(advisory, dict):
                vulns.append(_from_advisory(advisory))
    metadata = data.get("metadata")
    summary = metadata.get("vulnerabilities") if isinstance(metadata, dict) else None
    if isinstance(summary, dict):
        return AuditOutcome(vulnerabilities=vulns, total=_summary_total(summary, len(vulns)), summary=summary)
    return AuditOutcome(vulnerabilities=vulns, total=len(vulns))


def _parse_ndjson(lines: list[dict[str, Any]]) -> AuditOutcome:
    outcome = AuditOutcome()
    for item in lines:
        kind = item.get("type")
        data = item.get("data") or {}
        if kind == "auditAdvisory" and isinstance(data.get("advisory"), dict):
            outcome.vulnerabilities.append(_from_advisory(data["advisory"]))
        elif kind == "auditSummary" and isinstance(data.get("vulnerabilities"), dict):
            outcome.summary = data["vulnerabilities"]
    fallback = len(outcome.vulnerabilities)
    outcome.total = _summary_total(outcome.summary, fallback) if isinstance(outcome.summary, dict) else fallback
    return outcome


def parse_audit_output(output: str) -> AuditOutcome:
    """Normalise npm / pnpm JSON or yarn NDJSON audit output."""
    text = output.strip()
    if not text:
        raise AuditError("Failed to parse audit output: empty output", reason="parse")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        lines = []
        for line in text.splitlines():
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(item, dict):
                lines.append(item)
        if not lines:
            raise AuditError(f"Failed to parse audit output: {e}", reason="parse") from e
        return _parse_ndjson(lines)
    if not isinstance(data, dict):
        raise AuditError("Failed to parse audit output: expected a JSON object", reason="parse")
    if data.get("type") in ("auditAdvisory", "auditSummary"):
        return _parse_ndjson([data])
    return _parse_document(data)


# ── PackageManagerAuditor ────────────────────────────────────────────


class PackageManagerAuditor:
    """Runs ``<package manager> audit --json`` in the project root with a timeout.

    Audit tools exit non-zero whenever they find something, so stdout is
    parsed regardless of the exit code.
    """

    def __init__(self, package_manager: str = "pnpm", project_root: str | None = None, timeout: int = SUBPROCESS_TIMEOUT):
        self.package_manager = package_manager
        self._root = project_root
        self._timeout = timeout

    @property
    def command(self) -> tuple[str, ...]:
        cmd = AUDIT_COMMANDS.get(self.package_manager)
        if cmd is None:
            raise AuditError(
                f"Unsupported package manager {self.package_manager!r}; expected one of {sorted(AUDIT_COMMANDS)}",
                reason="failed",
            )
        return cmd

    def run(self) -> AuditOutcome:
        cmd = self.command
        cwd = self._root or os.getcwd()
        logger.debug("Running %s in %s (timeout %ss)", " ".join(cmd), cwd, self._timeout)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd, timeout=self._timeout)
        except FileNotFoundError as e:
            raise AuditError(f"command not found: {cmd[0]}", reason="missing") from e
        except subprocess.TimeoutExpired as e:
            raise AuditError(f"command timed out after {self._timeout}s: {' '.join(cmd)}", reason="timeout") from e
        except OSError as e:
            raise AuditError(str(e), reason="failed") from e
        if not proc.stdout.strip() and proc.returncode != 0:
            raise AuditError(
                f"{' '.join(cmd)} exited with code {proc.returncode}: {proc.stderr.strip()[:500]}", reason="failed"
            )
        return parse_audit_output(proc.stdout)


# ── DependencySecurityValidator ──────────────────────────────────────

AuditorFactory = Callable[[str], DependencyAuditor]


class DependencySecurityValidator(Validator):
    """Flags high/critical dependency vulnerabilities reported by the audit collaborator.

    An audit that cannot run or be parsed fails the rule with an ``error``
    detail instead of passing silently.
    """

    category = CATEGORY_DEPENDENCY_SECURITY

    def __init__(
        self,
        auditor_factory: AuditorFactory | None = None,
        project_root: str | None = None,
        timeout: int = SUBPROCESS_TIMEOUT,
        package_manager: str | None = None,
    ):
        self._factory = auditor_factory or (lambda pm: PackageManagerAuditor(pm, project_root, timeout))
        self._package_manager = package_manager

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        cfg = rule.config
        package_manager = self._package_manager or cfg.get("package_manager", "pnpm")
        try:
            outcome = self._factory(package_manager).run()
        except AuditError as e:
            logger.warning("Dependency audit failed (%s): %s", e.reason, e)
            return self._result(
                rule, False, {"error": f"Failed to run dependency audit: {e}", "vulnerabilities": []}
            )

        allowlist = set(cfg.get("allowlist") or [])
        flag = {"high": cfg.get("fail_on_high_severity", True), "critical": cfg.get("fail_on_critical_severity", True)}
        flagged: list[dict[str, Any]] = []
        for v in outcome.vulnerabilities:
            if v.package in allowlist or not flag.get(v.severity, False):
                continue
            entry = asdict(v)
            entry["type"] = "dependency_vulnerability"
            entry["advisory"] = v.description
            entry["description"] = f"{v.package}@{v.version}: {v.title}" if v.version else f"{v.package}: {v.title}"
            flagged.append(entry)

        high = sum(1 for v in flagged if v["severity"] == "high")
        critical = sum(1 for v in flagged if v["severity"] == "critical")
        passed = high <= cfg.get("max_high_severity_vulns", 0) and critical <= cfg.get(
            "max_critical_severity_vulns", 0
        )
        return self._result(
            rule,
            passed,
            {
                "vulnerabilities": flagged,
                "total_vulnerabilities": outcome.total,
                "summary": outcome.summary,
                "package_manager": package_manager,
            },
        )
