"""
Auto-fix resolver.

Applies the patches of user-selected, auto-fixable issues through a document
store collaborator. Application is not transactional: patches are applied in
selection order, a failed patch does not undo earlier ones, and every patch
gets its own outcome. Later patches to the same block overwrite earlier ones.

Usage:
    resolver = AutoFixResolver()
    result = resolver.resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], "balanced", store, bundle=bundle)
    print(result.fixed_count)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from crossdoc_analyzer.autofix.changelog import ChangeLogEntry, describe_changes, track_change, validate_patch
from crossdoc_analyzer.autofix.patches import BALANCED, generate_patches, validate_strategy
from crossdoc_analyzer.models.bundle import CrossDocBundle
from crossdoc_analyzer.models.issues import CrossDocIssue, Patch

logger = logging.getLogger(__name__)


# =============================================================================
# STORE COLLABORATOR
# =============================================================================


@dataclass(frozen=True)
class BlockUpdate:
    """Request to replace one block's text (optionally one field of it)."""
    document_id: str
    block_id: str
    new_text: str
    field: Optional[str] = None


class BlockStore(ABC):
    """Document storage that can update a single block."""

    @abstractmethod
    def update_block(self, update: BlockUpdate) -> Any:
        """Apply the update; raise when the block cannot be updated."""


# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass
class PatchOutcome:
    """Result of applying one patch."""
    issue_id: str
    patch: Patch
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "issueId": self.issue_id,
            "patch": self.patch.to_dict(),
            "success": self.success,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class RejectedIssue:
    issue_id: str
    code: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"issueId": self.issue_id, "code": self.code, "reason": self.reason}


@dataclass
class AutoFixResult:
    """Outcome of an auto-fix request."""
    fixed_count: int = 0
    applied: List[PatchOutcome] = field(default_factory=list)
    failed: List[PatchOutcome] = field(default_factory=list)
    rejected: List[RejectedIssue] = field(default_factory=list)
    unknown_issue_ids: List[str] = field(default_factory=list)
    changelog: List[ChangeLogEntry] = field(default_factory=list)
    strategy: str = BALANCED

    @property
    def rejected_issue_ids(self) -> List[str]:
        return [r.issue_id for r in self.rejected]

    @property
    def outcomes(self) -> List[PatchOutcome]:
        return self.applied + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fixedCount": self.fixed_count,
            "strategy": self.strategy,
            "applied": [o.to_dict() for o in self.applied],
            "failed": [o.to_dict() for o in self.failed],
            "rejected": [r.to_dict() for r in self.rejected],
            "unknownIssueIds": self.unknown_issue_ids,
            "changelog": [entry.to_dict() for entry in self.changelog],
            "description": describe_changes(self.changelog),
        }


# =============================================================================
# RESOLVER
# =============================================================================


class AutoFixResolver:
    """Filters selected issues to auto-fixable ones and applies their patches."""

    def _select(
        self, issues: List[CrossDocIssue], issue_ids: Iterable[str], result: AutoFixResult
    ) -> List[CrossDocIssue]:
        """Selected issues in caller order; an id may be an issue id or a rule code."""
        selected: List[CrossDocIssue] = []
        seen = set()
        for requested in issue_ids:
            matches = [issue for issue in issues if issue.id == requested or issue.code == requested]
            if not matches:
                result.unknown_issue_ids.append(requested)
                continue
            for issue in matches:
                if issue.id not in seen:
                    seen.add(issue.id)
                    selected.append(issue)
        return selected

    def _patches_for(
        self, issue: CrossDocIssue, strategy: str, bundle: Optional[CrossDocBundle]
    ) -> List[Patch]:
        if bundle is not None:
            return generate_patches(issue, bundle, strategy)
        suggestion = issue.auto_fix_suggestion()
        return list(suggestion.patches) if suggestion else []

    def _apply(self, issue: CrossDocIssue, patch: Patch, store: BlockStore) -> PatchOutcome:
        errors = validate_patch(patch)
        if errors:
            return PatchOutcome(issue_id=issue.id, patch=patch, success=False, error="; ".join(errors))

        try:
            store.update_block(BlockUpdate(
                document_id=patch.document_id,
                block_id=patch.block_id,
                new_text=patch.new_value,
                field=patch.field,
            ))
        except Exception as e:
            logger.warning(
                f"Patch failed for {issue.code} ({patch.document_id}/{patch.block_id}): {e}"
            )
            return PatchOutcome(issue_id=issue.id, patch=patch, success=False, error=str(e))

        logger.info(f"Applied patch for {issue.code}: {patch.document_id}/{patch.block_id} {patch.field or ''}")
        return PatchOutcome(issue_id=issue.id, patch=patch, success=True)

    def resolve(
        self,
        issues: List[CrossDocIssue],
        issue_ids: Iterable[str],
        strategy: str = BALANCED,
        store: Optional[BlockStore] = None,
        bundle: Optional[CrossDocBundle] = None,
    ) -> AutoFixResult:
        """
        Apply auto-fixes for the selected issues.

        Args:
            issues: Issues from a validation run
            issue_ids: Selected issue ids or rule codes, in application order
            strategy: balanced, align_to_protocol or align_to_sap
            store: Collaborator that applies block updates
            bundle: When given, patches are regenerated for the strategy;
                otherwise the patches carried by the issue are used

        Raises:
            ValueError: Unknown strategy or missing store
        """
        validate_strategy(strategy)
        if store is None:
            raise ValueError("A block store is required to apply auto-fixes")

        result = AutoFixResult(strategy=strategy)

        for issue in self._select(issues, issue_ids, result):
            if not issue.auto_fixable:
                result.rejected.append(RejectedIssue(issue.id, issue.code, "Issue is not auto-fixable"))
                continue

            patches = self._patches_for(issue, strategy, bundle)
            if not patches:
                result.rejected.append(
                    RejectedIssue(issue.id, issue.code, f"No patches available for strategy {strategy}")
                )
                continue

            all_applied = True
            for patch in patches:
                outcome = self._apply(issue, patch, store)
                if outcome.success:
                    result.applied.append(outcome)
                    result.changelog.append(track_change(patch, f"Auto-fix for {issue.code}: {issue.message}"))
                else:
                    result.failed.append(outcome)
                    all_applied = False

            if all_applied:
                result.fixed_count += 1

        logger.info(
            f"Auto-fix ({strategy}): fixed={result.fixed_count}, applied={len(result.applied)}, "
            f"failed={len(result.failed)}, rejected={len(result.rejected)}"
        )
        return result
