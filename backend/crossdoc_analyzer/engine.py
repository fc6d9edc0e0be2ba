"""
Cross-Document Consistency Engine.

Runs the rule registry against a document bundle:

1. Build the rule context (alignments computed once per run)
2. Evaluate every selected rule against the same context
3. Isolate rule failures: a raising rule is recorded and skipped
4. Concatenate issues in registration order and summarize them

Rules are pure, so they may run on a thread pool (max_workers > 1); the
output order is the registration order either way.

Usage:
    from crossdoc_analyzer.engine import CrossDocEngine
    from crossdoc_analyzer.models.bundle import CrossDocBundle

    engine = CrossDocEngine()
    result = engine.run(CrossDocBundle.from_dict(payload))
    print(result.get_summary())
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from crossdoc_analyzer.models.alignment import Alignments, AlignmentThresholds
from crossdoc_analyzer.models.bundle import CrossDocBundle
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, Severity
from crossdoc_analyzer.rules import RuleContext, RuleDefinition, RuleRegistry, build_rule_context, default_registry

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass
class RuleFailure:
    """A rule that raised during evaluation."""
    code: str
    category: Category
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": Category(self.category).value,
            "error": self.error,
        }


@dataclass
class ValidationSummary:
    """Issue counts by severity and by category."""
    total: int = 0
    critical: int = 0
    error: int = 0
    warning: int = 0
    info: int = 0
    by_category: Dict[str, int] = field(
        default_factory=lambda: {category.value: 0 for category in Category}
    )

    @classmethod
    def from_issues(cls, issues: List[CrossDocIssue]) -> "ValidationSummary":
        summary = cls()
        for issue in issues:
            summary.total += 1
            severity = Severity(issue.severity).value
            setattr(summary, severity, getattr(summary, severity) + 1)
            summary.by_category[Category(issue.category).value] += 1
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "critical": self.critical,
            "error": self.error,
            "warning": self.warning,
            "info": self.info,
            "byCategory": dict(self.by_category),
        }


@dataclass
class ValidationResult:
    """Outcome of one validation run."""
    issues: List[CrossDocIssue] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)
    failures: List[RuleFailure] = field(default_factory=list)
    alignments: Alignments = field(default_factory=Alignments)
    rules_executed: int = 0
    duration_seconds: float = 0.0

    @property
    def has_blocking_issues(self) -> bool:
        return self.summary.critical > 0 or self.summary.error > 0

    def get_summary(self) -> str:
        return (
            f"CrossDoc validation: {self.summary.total} issues "
            f"(critical={self.summary.critical}, error={self.summary.error}, "
            f"warning={self.summary.warning}, info={self.summary.info}) "
            f"from {self.rules_executed} rules in {self.duration_seconds:.3f}s "
            f"(failed={len(self.failures)})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": self.summary.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
            "rulesExecuted": self.rules_executed,
            "durationSeconds": round(self.duration_seconds, 4),
        }


# =============================================================================
# ENGINE
# =============================================================================


def _assign_unique_ids(issues: List[CrossDocIssue]) -> None:
    """Suffix repeated ids so every issue in a run is addressable."""
    seen: Dict[str, int] = {}
    for issue in issues:
        count = seen.get(issue.id, 0)
        seen[issue.id] = count + 1
        if count:
            issue.id = f"{issue.id}-{count + 1}"


class CrossDocEngine:
    """
    Evaluates registered rules against a bundle.

    All collaborators are injected; an engine holds no per-run state, so one
    instance may serve concurrent runs.
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        thresholds: Optional[AlignmentThresholds] = None,
        max_workers: Optional[int] = None,
    ):
        self.registry = registry if registry is not None else default_registry()
        self.thresholds = thresholds or AlignmentThresholds()
        self.max_workers = max_workers

    def _evaluate(
        self, rule: RuleDefinition, ctx: RuleContext
    ) -> Tuple[List[CrossDocIssue], Optional[RuleFailure]]:
        try:
            return list(rule.evaluate(ctx) or []), None
        except Exception as e:
            logger.error(f"Rule {rule.code} failed: {e}", exc_info=True)
            return [], RuleFailure(code=rule.code, category=rule.category, error=f"{type(e).__name__}: {e}")

    def run(
        self,
        bundle: Union[CrossDocBundle, Dict[str, Any], None],
        categories: Optional[Iterable[Union[Category, str]]] = None,
        codes: Optional[Iterable[str]] = None,
    ) -> ValidationResult:
        """
        Validate a bundle.

        Args:
            bundle: Documents to check (a CrossDocBundle or its dict form)
            categories: Restrict to these rule categories (None = all)
            codes: Restrict to these rule codes (None = all)

        Returns:
            ValidationResult with issues in registration order, the summary
            and any per-rule failures
        """
        start = time.time()
        if not isinstance(bundle, CrossDocBundle):
            bundle = CrossDocBundle.from_dict(bundle)

        rules = self.registry.select(categories=categories, codes=codes)

        logger.info("=" * 60)
        logger.info(
            f"Starting cross-document validation: documents={[t.value for t in bundle.present_types()]}, "
            f"rules={len(rules)}"
        )
        logger.info("=" * 60)

        ctx = build_rule_context(bundle, self.thresholds)

        if self.max_workers and self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(lambda rule: self._evaluate(rule, ctx), rules))
        else:
            outcomes = [self._evaluate(rule, ctx) for rule in rules]

        issues: List[CrossDocIssue] = []
        failures: List[RuleFailure] = []
        for rule_issues, failure in outcomes:
            issues.extend(rule_issues)
            if failure is not None:
                failures.append(failure)

        _assign_unique_ids(issues)

        result = ValidationResult(
            issues=issues,
            summary=ValidationSummary.from_issues(issues),
            failures=failures,
            alignments=ctx.alignments,
            rules_executed=len(rules),
            duration_seconds=time.time() - start,
        )

        logger.info("=" * 60)
        logger.info(result.get_summary())
        logger.info("=" * 60)
        return result
