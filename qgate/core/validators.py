"""Per-category rule validators and the registry that dispatches to them."""

from __future__ import annotations

import logging
import math
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from .constants import (
    CATEGORY_ACCESSIBILITY,
    CATEGORY_COMPLEXITY,
    CATEGORY_DOCUMENTATION,
    CATEGORY_PERFORMANCE,
    CATEGORY_STRUCTURE,
    CATEGORY_STYLE,
    CATEGORY_TESTING,
)
from .heuristics import (
    count_lines,
    cyclomatic_complexity,
    extract_functions,
    extract_identifiers,
    has_doc_comment,
    matches_convention,
)
from .models import Rule, ValidationResult

logger = logging.getLogger(__name__)

CoverageProvider = Callable[[], float | None]
ExecutionTimer = Callable[[str, str], float]
AltTextChecker = Callable[[str, str], list[dict[str, Any]]]


# ── Validator base ───────────────────────────────────────────────────


class Validator(ABC):
    """Abstract base for category validators.

    Subclasses set ``category`` and implement ``validate()``; they hold no
    state between calls beyond the collaborators passed to ``__init__``.
    """

    category: str = ""

    @abstractmethod
    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        raise NotImplementedError

    @staticmethod
    def _result(rule: Rule, passed: bool, details: dict[str, Any] | None = None) -> ValidationResult:
        return ValidationResult(
            rule_id=rule.id,
            rule_name=rule.name,
            category=rule.category,
            passed=passed,
            severity=rule.severity,
            details=details or {},
            timestamp=datetime.now(UTC).isoformat(),
        )


# ── ComplexityValidator ──────────────────────────────────────────────


class ComplexityValidator(Validator):
    """Flags functions whose heuristic cyclomatic complexity exceeds ``max_complexity``."""

    category = CATEGORY_COMPLEXITY

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        max_allowed = rule.config.get("max_complexity", 10)
        violations = []
        for fn in extract_functions(code):
            complexity = cyclomatic_complexity(fn.body)
            if complexity > max_allowed:
                violations.append(
                    {"function": fn.name, "complexity": complexity, "max_allowed": max_allowed, "line": fn.line}
                )
        return self._result(rule, not violations, {"violations": violations})


# ── StructureValidator ───────────────────────────────────────────────


class StructureValidator(Validator):
    category = CATEGORY_STRUCTURE

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        max_lines = rule.config.get("max_lines", 50)
        violations = []
        for fn in extract_functions(code):
            lines = count_lines(fn.body)
            if lines > max_lines:
                violations.append({"function": fn.name, "lines": lines, "max_allowed": max_lines, "line": fn.line})
        return self._result(rule, not violations, {"violations": violations})


# ── StyleValidator ───────────────────────────────────────────────────


class StyleValidator(Validator):
    """Checks declared identifiers against the rule's casing conventions.

    ``const`` declarations already written in UPPER_SNAKE_CASE are treated
    as constants; every other ``const``/``let``/``var`` is a variable.
    """

    category = CATEGORY_STYLE

    _CONVENTION_KEYS = {
        "variable": "variables",
        "function": "functions",
        "class": "classes",
        "constant": "constants",
    }

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        violations = []
        for ident in extract_identifiers(code):
            convention = rule.config.get(self._CONVENTION_KEYS[ident.kind])
            if not convention or matches_convention(ident.name, convention):
                continue
            violations.append({"type": ident.kind, "name": ident.name, "expected": convention, "line": ident.line})
        return self._result(rule, not violations, {"violations": violations})


# ── DocumentationValidator ───────────────────────────────────────────


class DocumentationValidator(Validator):
    category = CATEGORY_DOCUMENTATION

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        required = rule.config.get("min_coverage", 80)
        functions = extract_functions(code)
        if not functions:
            return self._result(
                rule,
                True,
                {"coverage": 100.0, "required": required, "total_functions": 0, "documented_functions": 0},
            )
        documented = [fn for fn in functions if has_doc_comment(code, fn.start)]
        coverage = round(len(documented) / len(functions) * 100, 2)
        return self._result(
            rule,
            coverage >= required,
            {
                "coverage": coverage,
                "required": required,
                "total_functions": len(functions),
                "documented_functions": len(documented),
                "undocumented": [fn.name for fn in functions if fn not in documented],
            },
        )


# ── TestingValidator ─────────────────────────────────────────────────


def env_coverage_provider(var_name: str = "TEST_COVERAGE") -> CoverageProvider:
    """Read an externally computed coverage percentage from the environment."""

    def _read() -> float | None:
        raw = os.environ.get(var_name)
        if raw is None or not raw.strip():
            return None
        try:
            value = float(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", var_name, raw)
            return None
        return value if math.isfinite(value) else None

    return _read


class TestingValidator(Validator):
    """Compares a coverage figure supplied by an outside tool against ``min_coverage``.

    Tests are never run here. A provider returning ``None`` means no figure
    was reported, which counts as 100%.
    """

    __test__ = False
    category = CATEGORY_TESTING

    def __init__(self, coverage_provider: CoverageProvider | None = None):
        self._coverage = coverage_provider or env_coverage_provider()

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        required = rule.config.get("min_coverage", 90)
        reported = self._coverage()
        coverage = 100.0 if reported is None else reported
        return self._result(
            rule, coverage >= required, {"coverage": coverage, "required": required, "reported": reported is not None}
        )


# ── PerformanceValidator ─────────────────────────────────────────────


def placeholder_timer(code: str, file_path: str) -> float:
    # Stand-in until a benchmarking hook is wired in; not a measurement.
    return 500.0


class PerformanceValidator(Validator):
    """Compares a measured execution time (ms) against ``max_execution_time``.

    The default timer is a placeholder; pass ``timer`` to plug in a real
    benchmark.
    """

    category = CATEGORY_PERFORMANCE

    def __init__(self, timer: ExecutionTimer | None = None):
        self._timer = timer or placeholder_timer
        self.is_placeholder = timer is None

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        limit = rule.config.get("max_execution_time", 1000)
        elapsed = self._timer(code, file_path)
        issues = []
        if elapsed > limit:
            issues.append({"type": "execution_time", "value": elapsed, "limit": limit})
        return self._result(rule, not issues, {"issues": issues, "placeholder": self.is_placeholder})


# ── AccessibilityValidator ───────────────────────────────────────────


def no_alt_text_checks(code: str, file_path: str) -> list[dict[str, Any]]:
    return []


class AccessibilityValidator(Validator):
    """Extension point for accessibility checks.

    Without an ``alt_text_checker`` nothing is inspected and the rule always passes.
    """

    category = CATEGORY_ACCESSIBILITY

    def __init__(self, alt_text_checker: AltTextChecker | None = None):
        self._check_alt_text = alt_text_checker or no_alt_text_checks

    def validate(self, code: str, rule: Rule, file_path: str) -> ValidationResult:
        issues: list[dict[str, Any]] = []
        if rule.config.get("check_alt_text", True):
            issues.extend(self._check_alt_text(code, file_path))
        return self._result(rule, not issues, {"issues": issues})


# ── ValidatorRegistry ────────────────────────────────────────────────


class ValidatorRegistry:
    """Maps a rule category to the validator that evaluates it."""

    def __init__(self, validators: list[Validator] | None = None):
        self._validators: dict[str, Validator] = {}
        for v in validators or []:
            self.register(v)

    def register(self, validator: Validator, category: str | None = None) -> None:
        key = category or validator.category
        if not key:
            raise ValueError(f"{type(validator).__name__} has no category")
        self._validators[key] = validator

    def get(self, category: str) -> Validator | None:
        return self._validators.get(category)

    def __contains__(self, category: object) -> bool:
        return category in self._validators

    def categories(self) -> list[str]:
        return list(self._validators)
