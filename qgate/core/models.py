"""Quality gate data models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

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
)

ALL_CATEGORIES = (
    CATEGORY_COMPLEXITY,
    CATEGORY_STRUCTURE,
    CATEGORY_STYLE,
    CATEGORY_DOCUMENTATION,
    CATEGORY_TESTING,
    CATEGORY_SECURITY,
    CATEGORY_DEPENDENCY_SECURITY,
    CATEGORY_ENVIRONMENT_SECURITY,
    CATEGORY_PERFORMANCE,
    CATEGORY_ACCESSIBILITY,
)

IssueSeverity = Literal["critical", "high", "medium", "low"]


# ── Rules ────────────────────────────────────────────────────────────


class Rule(BaseModel):
    id: str
    name: str
    description: str = ""
    severity: Literal["error", "warning"] = "warning"
    category: str
    enabled: bool = True
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("category")
    @classmethod
    def _validate_category(cls, v: str) -> str:
        if v not in ALL_CATEGORIES:
            raise ValueError(f"category must be one of {ALL_CATEGORIES}, got {v!r}")
        return v


# ── Validation reports ───────────────────────────────────────────────


class ValidationResult(BaseModel):
    rule_id: str
    rule_name: str
    category: str
    passed: bool
    severity: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = ""


class ValidationSummary(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    errors: int = 0

    @model_validator(mode="after")
    def _check_counts(self) -> ValidationSummary:
        if self.total != self.passed + self.failed:
            raise ValueError("total must equal passed + failed")
        if self.failed != self.warnings + self.errors:
            raise ValueError("failed must equal warnings + errors")
        return self


class ValidationReport(BaseModel):
    file_path: str
    timestamp: str
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    details: list[ValidationResult] = Field(default_factory=list)
    quality_score: float = 0.0
    status: str = "pending"
    recommendations: list[str] = Field(default_factory=list)
    validation_time: float = 0.0
    error: str | None = None

    @property
    def failed_categories(self) -> set[str]:
        return {d.category for d in self.details if not d.passed}


# ── Security audit ───────────────────────────────────────────────────


class SecurityIssue(BaseModel):
    rule: str
    type: str
    severity: IssueSeverity
    description: str = ""
    file: str = "N/A"
    line: int = 0
    recommendation: str = ""


class AuditSummary(BaseModel):
    total_issues: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class SecurityAuditReport(BaseModel):
    timestamp: str
    summary: AuditSummary = Field(default_factory=AuditSummary)
    issues: list[SecurityIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    status: str = "pending"
    error: str | None = None


# ── Trends ───────────────────────────────────────────────────────────


class TrendPoint(BaseModel):
    date: str
    average_score: float
    total_validations: int
    status_distribution: dict[str, int] = Field(default_factory=dict)
