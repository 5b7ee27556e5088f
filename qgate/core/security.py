"""Security validators: source-level vulnerability shapes and environment hygiene."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable
from typing import Any

from .constants import CATEGORY_ENVIRONMENT_SECURITY, CATEGORY_SECURITY
from .heuristics import excerpt, line_number, mask_secret
from .models import Rule, ValidationResult
from .rules import DEFAULT_SECRET_PATTERNS
from .validators import Validator

logger = logging.getLogger(__name__)

_SQL_INJECTION_PATTERNS = (
    re.compile(r"""(SELECT|INSERT|UPDATE|DELETE)\s+.*\+.*['"]""", re.IGNORECASE),
    re.compile(r"""exec\s*\(\s*['"].*\+.*['"]\s*\)""", re.IGNORECASE),
    re.compile(r"""query\s*\(\s*['"].*\+.*['"]\s*\)""", re.IGNORECASE),
    re.compile(r"""execute\s*\(\s*['"].*\+.*['"]\s*\)""", re.IGNORECASE),
)

_XSS_PATTERNS = (
    re.compile(r"""innerHTML\s*=.*['"].*<script""", re.IGNORECASE),
    re.compile(r"""document\.write\s*\(\s*['"].*<.*>""", re.IGNORECASE),
    re.compile(r"""eval\s*\(\s*['"].*<.*>""", re.IGNORECASE),
    re.compile(r"dangerouslySetInnerHTML", re.IGNORECASE),
)

_CSRF_PATTERNS = (
    re.compile(r"POST\s+.*\n.*no.*token", re.IGNORECASE),
    re.compile(r"""fetch\s*\(\s*['"].*POST['"]\s*.*\{[^}]*headers[^}]*\}""", re.IGNORECASE),
    re.compile(r"axios\.post\s*\([^)]*\)", re.IGNORECASE),
)

ENV_FILES = (".env", ".env.local", ".env.production", ".env.development")

_ENV_FILE_SECRET_PATTERNS = (
    re.compile(r"API[_-]?KEY\s*=.+", re.IGNORECASE),
    re.compile(r"SECRET[_-]?KEY\s*=.+", re.IGNORECASE),
    re.compile(r"PASSWORD\s*=.+", re.IGNORECASE),
    re.compile(r"TOKEN\s*=.+", re.IGNORECASE),
    re.compile(r"PRIVATE[_-]?KEY\s*=.+", re.IGNORECASE),
)

GITIGNORE_REQUIRED = (".env", ".env.local", "*.key", "*.pem", "config/secrets.yml")


def _compile_secret_patterns(patterns: list[str] | tuple[str, ...]) -> list[re.Pattern[str]]:
    compiled = []
    for p in patterns:
        try:
            compiled.append(re.compile(p, re.IGNORECASE))
        except re.error as e:
            logger.warning("Skipping invalid secret pattern %r: %s", p, e)
    return compiled


# ── SecurityValidator ────────────────────────────────────────────────


class SecurityValidator(Validator):
    """Scans raw text for SQL injection, XSS, CSRF and hardcoded-secret shapes.

    Passes only when none of the enabled checks matches anything.
    """

    category = CATEGORY_SECURITY

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        cfg = rule.config
        vulns: list[dict[str, Any]] = []
        if cfg.get("check_sql_injection", True):
            vulns.extend(self.check_sql_injection(code))
        if cfg.get("check_xss", True):
            vulns.extend(self.check_xss(code))
        if cfg.get("check_csrf", True):
            vulns.extend(self.check_csrf(code))
        if cfg.get("check_hardcoded_secrets", True):
            patterns = cfg.get("secret_patterns") or DEFAULT_SECRET_PATTERNS
            vulns.extend(self.check_hardcoded_secrets(code, patterns))
        for v in vulns:
            v.setdefault("file", file_path)
        return self._result(rule, not vulns, {"vulnerabilities": vulns})

    @staticmethod
    def _scan(
        code: str,
        patterns: tuple[re.Pattern[str], ...] | list[re.Pattern[str]],
        vuln_type: str,
        severity: str,
        description: str,
        skip: Callable[[str], bool] | None = None,
    ) -> list[dict[str, Any]]:
        found = []
        for pat in patterns:
            for m in pat.finditer(code):
                if skip is not None and skip(m.group(0)):
                    continue
                found.append(
                    {
                        "type": vuln_type,
                        "severity": severity,
                        "description": description,
                        "pattern": pat.pattern,
                        "match": excerpt(m.group(0)),
                        "line": line_number(code, m.start()),
                    }
                )
        return found

    def check_sql_injection(self, code: str) -> list[dict[str, Any]]:
        return self._scan(
            code, _SQL_INJECTION_PATTERNS, "sql_injection", "high", "Potential SQL injection vulnerability detected"
        )

    def check_xss(self, code: str) -> list[dict[str, Any]]:
        return self._scan(code, _XSS_PATTERNS, "xss_vulnerability", "high", "Potential XSS vulnerability detected")

    def check_csrf(self, code: str) -> list[dict[str, Any]]:
        return self._scan(
            code,
            _CSRF_PATTERNS,
            "csrf_vulnerability",
            "medium",
            "Potential CSRF vulnerability - no CSRF token validation detected",
            skip=lambda match: "csrf" in match.lower(),
        )

    def check_hardcoded_secrets(self, code: str, patterns: list[str] | tuple[str, ...]) -> list[dict[str, Any]]:
        found = []
        for pat in _compile_secret_patterns(patterns):
            for m in pat.finditer(code):
                found.append(
                    {
                        "type": "hardcoded_secret",
                        "severity": "critical",
                        "description": "Potential hardcoded secret/API key detected",
                        "pattern": pat.pattern,
                        "match": mask_secret(m.group(0)),
                        "line": line_number(code, m.start()),
                    }
                )
        return found


# ── EnvironmentSecurityValidator ─────────────────────────────────────


class EnvironmentSecurityValidator(Validator):
    """Checks for hardcoded sensitive env vars, secret-bearing env files and ignore-file gaps.

    Env files and ``.gitignore`` are read from ``project_root`` (the process
    working directory when not given).
    """

    category = CATEGORY_ENVIRONMENT_SECURITY

    def __init__(self, project_root: str | None = None):
        self._root = project_root

    @property
    def root(self) -> str:
        return self._root or os.getcwd()

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        cfg = rule.config
        issues: list[dict[str, Any]] = []
        sensitive = cfg.get("sensitive_env_vars") or []
        if sensitive:
            issues.extend(self.check_hardcoded_env_vars(code, sensitive, file_path))
        if cfg.get("check_env_files", True):
            issues.extend(self.check_env_files())
        if cfg.get("check_gitignore", True):
            issues.extend(self.check_gitignore())
        return self._result(rule, not issues, {"issues": issues})

    def check_hardcoded_env_vars(self, code: str, names: list[str], file_path: str = "") -> list[dict[str, Any]]:
        issues = []
        for name in names:
            escaped = re.escape(name)
            patterns = (
                re.compile(rf"""\b{escaped}\s*=\s*['"][^'"]+['"]""", re.IGNORECASE),
                re.compile(rf"""process\.env\.{escaped}\s*=\s*['"][^'"]+['"]""", re.IGNORECASE),
                re.compile(rf"""['"]{escaped}['"]\s*:\s*['"][^'"]+['"]""", re.IGNORECASE),
            )
            for pat in patterns:
                for m in pat.finditer(code):
                    issues.append(
                        {
                            "type": "hardcoded_env_var",
                            "severity": "critical",
                            "variable": name,
                            "description": f"Hardcoded sensitive environment variable: {name}",
                            "match": mask_secret(m.group(0)),
                            "file": file_path,
                            "line": line_number(code, m.start()),
                        }
                    )
        return issues

    def check_env_files(self) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for fname in ENV_FILES:
            path = os.path.join(self.root, fname)
            try:
                with open(path, encoding="utf-8") as f:
                    content = f.read()
            except FileNotFoundError:
                continue
            except (OSError, UnicodeDecodeError) as e:
                if os.path.isdir(path):
                    continue
                issues.append(
                    {
                        "type": "sensitive_env_file_read_error",
                        "severity": "low",
                        "file": fname,
                        "description": f"Error reading environment file {fname}: {e}",
                    }
                )
                continue
            for pat in _ENV_FILE_SECRET_PATTERNS:
                matches = pat.findall(content)
                if matches:
                    issues.append(
                        {
                            "type": "sensitive_env_file",
                            "severity": "medium",
                            "file": fname,
                            "description": f"Environment file {fname} contains potentially sensitive data",
                            "matches": len(matches),
                        }
                    )
        return issues

    def check_gitignore(self) -> list[dict[str, Any]]:
        path = os.path.join(self.root, ".gitignore")
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            return [
                {
                    "type": "missing_gitignore",
                    "severity": "critical",
                    "file": ".gitignore",
                    "description": "No .gitignore file found - sensitive files may be committed",
                }
            ]
        except (OSError, UnicodeDecodeError) as e:
            return [
                {
                    "type": "gitignore_read_error",
                    "severity": "low",
                    "file": ".gitignore",
                    "description": f"Error reading .gitignore: {e}",
                }
            ]
        entries = {line.strip().lstrip("/") for line in content.splitlines()}
        issues = []
        for pattern in GITIGNORE_REQUIRED:
            if pattern not in entries:
                issues.append(
                    {
                        "type": "missing_gitignore_entry",
                        "severity": "high",
                        "pattern": pattern,
                        "file": ".gitignore",
                        "description": f"Missing .gitignore entry for sensitive file: {pattern}",
                    }
                )
        return issues
