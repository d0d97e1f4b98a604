"""
bedrockci — verdict engine.

File: src/bedrockci/validation/verdict.py

Purpose
- Reduce a ``ValidationResult`` to pass/fail under one ``VerdictPolicy``.
- Build a human-readable report grouping findings by category tag.

Functional requirements
- Grouping preserves first-seen category order and never affects pass/fail.
- Untagged findings land in the "Other" bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from bedrockci.validation.errors import ValidationFailed
from bedrockci.validation.models import Finding, JSONValue, Severity, ValidationResult

logger = logging.getLogger(__name__)


class VerdictPolicy(StrEnum):
    """How accumulated findings map to a CI outcome."""

    LENIENT = "lenient"
    NORMAL = "normal"
    STRICT_ON_WARN = "strict_on_warn"

    @classmethod
    def from_flags(cls, *, only_warn: bool, fail_on_warn: bool) -> VerdictPolicy:
        if only_warn and fail_on_warn:
            raise ValueError("only_warn and fail_on_warn are mutually exclusive")
        if only_warn:
            return cls.LENIENT
        if fail_on_warn:
            return cls.STRICT_ON_WARN
        return cls.NORMAL


@dataclass(frozen=True, slots=True)
class CategoryGroup:
    category: str
    findings: tuple[Finding, ...]


@dataclass(frozen=True, slots=True)
class SeveritySection:
    severity: Severity
    groups: tuple[CategoryGroup, ...]

    @property
    def count(self) -> int:
        return sum(len(group.findings) for group in self.groups)


@dataclass(frozen=True, slots=True)
class VerdictReport:
    """Category-grouped view of a result, one section per severity."""

    sections: tuple[SeveritySection, ...]

    def section(self, severity: Severity) -> SeveritySection:
        for item in self.sections:
            if item.severity is severity:
                return item
        return SeveritySection(severity=severity, groups=())

    def lines(self, *, include_info: bool = False) -> list[str]:
        rendered: list[str] = []
        for item in self.sections:
            if item.severity is Severity.INFO and not include_info:
                continue
            if not item.groups:
                continue
            rendered.append(f"{_SECTION_TITLES[item.severity]} ({item.count}):")
            for group in item.groups:
                rendered.append(f"  [{group.category}] ({len(group.findings)})")
                rendered.extend(f"    {finding.message}" for finding in group.findings)
        return rendered

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            item.severity.value: [
                {
                    "category": group.category,
                    "messages": [finding.message for finding in group.findings],
                }
                for group in item.groups
            ]
            for item in self.sections
        }


@dataclass(frozen=True, slots=True)
class Verdict:
    passed: bool
    policy: VerdictPolicy
    error_count: int
    warning_count: int
    summary: str
    report: VerdictReport

    def raise_for_failure(self) -> None:
        if self.passed:
            return
        raise ValidationFailed(
            self.summary,
            error_count=self.error_count,
            warning_count=self.warning_count,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passed": self.passed,
            "policy": self.policy.value,
            "errors": self.error_count,
            "warnings": self.warning_count,
            "summary": self.summary,
            "report": self.report.to_dict(),
        }


_SECTION_TITLES: dict[Severity, str] = {
    Severity.ERROR: "Errors",
    Severity.WARNING: "Warnings",
    Severity.INFO: "Info",
}


def decide(policy: VerdictPolicy, *, errors: int, warnings: int) -> bool:
    """Pure pass/fail rule."""

    if policy is VerdictPolicy.LENIENT:
        return True
    if policy is VerdictPolicy.STRICT_ON_WARN:
        return errors == 0 and warnings == 0
    return errors == 0


def evaluate(result: ValidationResult, policy: VerdictPolicy) -> Verdict:
    errors = result.error_count
    warnings = result.warning_count
    passed = decide(policy, errors=errors, warnings=warnings)
    verdict = Verdict(
        passed=passed,
        policy=policy,
        error_count=errors,
        warning_count=warnings,
        summary=_summary(policy, passed=passed, errors=errors, warnings=warnings),
        report=build_report(result),
    )
    logger.info(
        "verdict reached",
        extra={"passed": passed, "policy": policy.value, "errors": errors, "warnings": warnings},
    )
    return verdict


def build_report(result: ValidationResult) -> VerdictReport:
    return VerdictReport(
        sections=tuple(
            SeveritySection(severity=severity, groups=group_by_category(result.findings(severity)))
            for severity in Severity
        )
    )


def group_by_category(findings: Iterable[Finding]) -> tuple[CategoryGroup, ...]:
    buckets: dict[str, list[Finding]] = {}
    for finding in findings:
        buckets.setdefault(finding.bucket, []).append(finding)
    return tuple(
        CategoryGroup(category=category, findings=tuple(items))
        for category, items in buckets.items()
    )


def _summary(policy: VerdictPolicy, *, passed: bool, errors: int, warnings: int) -> str:
    if policy is VerdictPolicy.LENIENT:
        return f"Validation completed with {errors} errors and {warnings} warnings"
    if passed:
        return "Validation completed successfully"
    if policy is VerdictPolicy.STRICT_ON_WARN:
        return (
            f"Validation failed with {errors} errors and {warnings} warnings (fail on warn mode)"
        )
    return f"Validation failed with {errors} errors"


__all__ = [
    "CategoryGroup",
    "SeveritySection",
    "Verdict",
    "VerdictPolicy",
    "VerdictReport",
    "build_report",
    "decide",
    "evaluate",
    "group_by_category",
]
