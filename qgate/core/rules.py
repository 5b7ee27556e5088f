"""Rule catalog: the fixed set of quality and security rules plus score thresholds."""

from __future__ import annotations

import copy
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

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
    CONFIG_SCHEMA_VERSION,
    RULE_ACCESSIBILITY,
    RULE_COMPLEXITY,
    RULE_DEPENDENCY_SECURITY,
    RULE_DOCUMENTATION,
    RULE_ENVIRONMENT_SECURITY,
    RULE_FUNCTION_LENGTH,
    RULE_NAMING,
    RULE_PERFORMANCE,
    RULE_SECURITY,
    RULE_TEST_COVERAGE,
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    THRESHOLD_ERROR_COUNT,
    THRESHOLD_PERFORMANCE_SCORE,
    THRESHOLD_QUALITY_SCORE,
)
from .errors import ConfigurationError, RuleNotFoundError
from .models import Rule

logger = logging.getLogger(__name__)

# Secret patterns are matched case-insensitively against raw source text.
DEFAULT_SECRET_PATTERNS: tuple[str, ...] = (
    r"""api[_-]?key['"\s]*[:=]['"\s]*['"][a-zA-Z0-9]{16,}""",
    r"""secret[_-]?key['"\s]*[:=]['"\s]*['"][a-zA-Z0-9]{16,}""",
    r"""password['"\s]*[:=]['"\s]*['"][^'"]{8,}""",
    r"""token['"\s]*[:=]['"\s]*['"][a-zA-Z0-9]{16,}""",
    r"""aws[_-]?access[_-]?key['"\s]*[:=]['"\s]*['"][A-Z0-9]{20}""",
    r"""aws[_-]?secret[_-]?key['"\s]*[:=]['"\s]*['"][A-Za-z0-9/+=]{40}""",
    r"""github[_-]?token['"\s]*[:=]['"\s]*['"][a-zA-Z0-9]{40}""",
    r"""private[_-]?key['"\s]*[:=]['"\s]*['"]-+BEGIN""",
)


def default_rules() -> list[Rule]:
    return [
        Rule(
            id=RULE_COMPLEXITY,
            name="Code Complexity",
            description="Maximum cyclomatic complexity per function",
            severity=SEVERITY_ERROR,
            category=CATEGORY_COMPLEXITY,
            config={"max_complexity": 10},
        ),
        Rule(
            id=RULE_FUNCTION_LENGTH,
            name="Function Length",
            description="Maximum lines per function",
            severity=SEVERITY_WARNING,
            category=CATEGORY_STRUCTURE,
            config={"max_lines": 50},
        ),
        Rule(
            id=RULE_NAMING,
            name="Naming Conventions",
            description="Consistent naming across the codebase",
            severity=SEVERITY_WARNING,
            category=CATEGORY_STYLE,
            config={
                "variables": "camelCase",
                "functions": "camelCase",
                "classes": "PascalCase",
                "constants": "UPPER_SNAKE_CASE",
            },
        ),
        Rule(
            id=RULE_DOCUMENTATION,
            name="Documentation Coverage",
            description="Minimum documentation coverage percentage",
            severity=SEVERITY_WARNING,
            category=CATEGORY_DOCUMENTATION,
            config={"min_coverage": 80},
        ),
        Rule(
            id=RULE_TEST_COVERAGE,
            name="Test Coverage",
            description="Minimum test coverage percentage",
            severity=SEVERITY_ERROR,
            category=CATEGORY_TESTING,
            config={"min_coverage": 90},
        ),
        Rule(
            id=RULE_SECURITY,
            name="Security Vulnerabilities",
            description="Check for common security issues and vulnerabilities",
            severity=SEVERITY_ERROR,
            category=CATEGORY_SECURITY,
            config={
                "check_sql_injection": True,
                "check_xss": True,
                "check_csrf": True,
                "check_hardcoded_secrets": True,
                "secret_patterns": list(DEFAULT_SECRET_PATTERNS),
            },
        ),
        Rule(
            id=RULE_DEPENDENCY_SECURITY,
            name="Dependency Security",
            description="Check for vulnerable dependencies using audit tools",
            severity=SEVERITY_ERROR,
            category=CATEGORY_DEPENDENCY_SECURITY,
            config={
                "package_manager": "pnpm",
                "fail_on_high_severity": True,
                "fail_on_critical_severity": True,
                "max_high_severity_vulns": 0,
                "max_critical_severity_vulns": 0,
                "allowlist": [],
            },
        ),
        Rule(
            id=RULE_ENVIRONMENT_SECURITY,
            name="Environment Security",
            description="Verify environment variables and configuration security",
            severity=SEVERITY_ERROR,
            category=CATEGORY_ENVIRONMENT_SECURITY,
            config={
                "sensitive_env_vars": ["API_KEY", "SECRET_KEY", "DATABASE_URL", "PRIVATE_KEY"],
                "check_env_files": True,
                "check_gitignore": True,
            },
        ),
        Rule(
            id=RULE_PERFORMANCE,
            name="Performance Thresholds",
            description="Performance benchmarks and limits",
            severity=SEVERITY_WARNING,
            category=CATEGORY_PERFORMANCE,
            config={"max_execution_time": 1000},
        ),
        Rule(
            id=RULE_ACCESSIBILITY,
            name="Accessibility Compliance",
            description="WCAG 2.1 AA compliance checks",
            severity=SEVERITY_ERROR,
            category=CATEGORY_ACCESSIBILITY,
            config={"wcag_level": "AA", "check_alt_text": True},
        ),
    ]


def default_thresholds() -> dict[str, dict[str, float]]:
    return {
        THRESHOLD_QUALITY_SCORE: {"excellent": 95, "good": 85, "acceptable": 70, "poor": 50},
        THRESHOLD_ERROR_COUNT: {"critical": 0, "warning": 5, "acceptable": 10},
        THRESHOLD_PERFORMANCE_SCORE: {"excellent": 90, "good": 75, "acceptable": 60, "poor": 40},
    }


class RuleCatalog:
    """Ordered rule definitions and score thresholds for one engine instance.

    Rules are replaced, never mutated in place, so a ``Rule`` handed out by
    ``get_rule`` keeps the values it had when it was fetched.
    """

    def __init__(self, rules: list[Rule] | None = None, thresholds: dict[str, dict[str, float]] | None = None):
        self._rules: dict[str, Rule] = {r.id: r for r in (rules if rules is not None else default_rules())}
        self._thresholds = thresholds if thresholds is not None else default_thresholds()

    def __iter__(self):
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    @property
    def thresholds(self) -> dict[str, dict[str, float]]:
        return self._thresholds

    def get_rule(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def update_rule(self, rule_id: str, updates: dict[str, Any]) -> Rule:
        """Shallow-merge *updates* into the rule; ``config`` is replaced wholesale like any other field."""
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        data = rule.model_dump()
        data.update(updates)
        data["id"] = rule_id
        try:
            updated = Rule(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid update for rule {rule_id}: {e}") from e
        self._rules[rule_id] = updated
        logger.debug("Rule %s updated: %s", rule_id, sorted(updates))
        return updated

    def enable_rule(self, rule_id: str) -> Rule:
        return self.update_rule(rule_id, {"enabled": True})

    def disable_rule(self, rule_id: str) -> Rule:
        return self.update_rule(rule_id, {"enabled": False})

    def export_configuration(self) -> dict[str, Any]:
        return {
            "rules": {rid: r.model_dump(mode="json") for rid, r in self._rules.items()},
            "thresholds": copy.deepcopy(self._thresholds),
            "version": CONFIG_SCHEMA_VERSION,
            "export_date": datetime.now(UTC).isoformat(),
        }

    def import_configuration(self, snapshot: dict[str, Any]) -> None:
        """Merge a snapshot produced by ``export_configuration``; entries overwrite by id.

        Both sections must be present. A snapshot that fails validation leaves
        the catalog untouched.
        """
        if not isinstance(snapshot, dict):
            raise ConfigurationError("Invalid configuration format: expected a mapping")
        rules = snapshot.get("rules")
        thresholds = snapshot.get("thresholds")
        if not isinstance(rules, dict) or not isinstance(thresholds, dict):
            raise ConfigurationError("Invalid configuration format: 'rules' and 'thresholds' are required")

        parsed: dict[str, Rule] = {}
        for rid, raw in rules.items():
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Invalid rule entry for {rid}")
            try:
                parsed[rid] = Rule(**{**raw, "id": rid})
            except ValidationError as e:
                raise ConfigurationError(f"Invalid rule entry for {rid}: {e}") from e
        for tid, values in thresholds.items():
            if not isinstance(values, dict):
                raise ConfigurationError(f"Invalid threshold entry for {tid}")

        self._rules.update(parsed)
        for tid, values in thresholds.items():
            self._thresholds[tid] = dict(values)
        logger.info("Imported %d rule(s) and %d threshold set(s)", len(parsed), len(thresholds))
