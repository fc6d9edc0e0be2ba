"""
Unit tests for auto-fix patch generation, change logging and the resolver.
"""

from unittest.mock import MagicMock

import pytest

from crossdoc_analyzer.autofix import (
    ALIGN_TO_PROTOCOL,
    ALIGN_TO_SAP,
    BALANCED,
    AutoFixResolver,
    BlockStore,
    BlockUpdate,
    describe_changes,
    fix_primary_endpoint_drift,
    fix_test_mismatch,
    generate_patches,
    track_change,
    validate_patch,
)
from crossdoc_analyzer.autofix.patches import is_test_appropriate
from crossdoc_analyzer.engine import CrossDocEngine
from crossdoc_analyzer.models.bundle import CrossDocBundle, DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Patch, Severity, Suggestion


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def bundle():
    """Protocol/SAP pair with a drifted primary endpoint and a wrong test."""
    return CrossDocBundle.from_dict({
        "protocol": {
            "id": "prot-1",
            "version": "1.0",
            "endpoints": [
                {"id": "P-EP-1", "type": "primary", "name": "Change in HbA1c",
                 "description": "Change from baseline in HbA1c at week 26", "dataType": "continuous"},
            ],
        },
        "sap": {
            "id": "sap-1",
            "version": "1.0",
            "primaryEndpoints": [
                {"id": "S-EP-1", "name": "Overall survival", "description": "Time to death"},
            ],
            "statisticalTests": [{"endpointId": "P-EP-1", "test": "Log-rank test"}],
        },
    })


@pytest.fixture
def issues(bundle):
    return CrossDocEngine().run(bundle, categories=[Category.PROTOCOL_SAP]).issues


@pytest.fixture
def store():
    return MagicMock(spec=BlockStore)


def _manual_issue(code="MANUAL", patches=None, auto_fixable=True):
    return CrossDocIssue(
        code=code,
        severity=Severity.ERROR,
        category=Category.PROTOCOL_SAP,
        message=f"{code} issue",
        locations=[IssueLocation(DocumentType.SAP, "PRIMARY_ANALYSIS")],
        suggestions=[Suggestion(id="FIX", label="Fix", auto_fixable=auto_fixable, patches=patches or [])],
    )


# =============================================================================
# Patch Generation
# =============================================================================

class TestPatchGeneration:
    """Test strategy-dependent patch generators."""

    def test_balanced_drift_targets_sap(self, bundle):
        patches = fix_primary_endpoint_drift(bundle, BALANCED)
        assert {p.document_type for p in patches} == {DocumentType.SAP}
        assert [p.new_value for p in patches] == ["Change in HbA1c", "Change from baseline in HbA1c at week 26"]

    def test_align_to_protocol_same_as_balanced_for_drift(self, bundle):
        assert fix_primary_endpoint_drift(bundle, ALIGN_TO_PROTOCOL) == fix_primary_endpoint_drift(bundle, BALANCED)

    def test_align_to_sap_targets_protocol(self, bundle):
        patches = fix_primary_endpoint_drift(bundle, ALIGN_TO_SAP)
        assert {p.document_type for p in patches} == {DocumentType.PROTOCOL}
        assert patches[0].block_id == "P-EP-1"
        assert patches[0].new_value == "Overall survival"

    def test_test_mismatch_balanced(self, bundle):
        patches = fix_test_mismatch(bundle, BALANCED)
        assert len(patches) == 1
        assert patches[0].document_type == DocumentType.SAP
        assert patches[0].block_id == "test-P-EP-1"
        assert patches[0].old_value == "Log-rank test"
        assert patches[0].new_value == "ANCOVA"

    def test_test_mismatch_align_to_sap(self, bundle):
        """The Protocol data type follows the SAP test."""
        patches = fix_test_mismatch(bundle, ALIGN_TO_SAP)
        assert [(p.document_type, p.field, p.new_value) for p in patches] == [
            (DocumentType.PROTOCOL, "data_type", "time_to_event"),
        ]

    def test_missing_documents_give_no_patches(self):
        empty = CrossDocBundle()
        assert fix_primary_endpoint_drift(empty) == []
        assert fix_test_mismatch(empty) == []

    def test_unknown_strategy(self, bundle, issues):
        with pytest.raises(ValueError):
            generate_patches(issues[0], bundle, "align_to_csr")

    def test_substring_test_names(self):
        assert is_test_appropriate("Log-rank test", "time_to_event")
        assert not is_test_appropriate("Log-rank test", "continuous")
        assert is_test_appropriate("anything", None)


# =============================================================================
# Resolver
# =============================================================================

class TestAutoFixResolver:
    """Test selection, application and reporting."""

    def test_drift_fix_applies_both_patches(self, issues, store):
        """One issue, two block updates, one fixed issue."""
        result = AutoFixResolver().resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], BALANCED, store)

        assert result.fixed_count == 1
        assert store.update_block.call_count == 2
        first = store.update_block.call_args_list[0].args[0]
        assert first == BlockUpdate(document_id="sap-1", block_id="S-EP-1", new_text="Change in HbA1c", field="name")
        assert len(result.changelog) == 2
        assert result.failed == []

    def test_select_by_issue_id(self, issues, store):
        drift = next(i for i in issues if i.code == "PRIMARY_ENDPOINT_DRIFT")
        result = AutoFixResolver().resolve(issues, [drift.id], BALANCED, store)
        assert result.fixed_count == 1

    def test_regenerates_for_strategy_with_bundle(self, issues, store, bundle):
        """With the bundle, align_to_sap edits the Protocol."""
        result = AutoFixResolver().resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], ALIGN_TO_SAP, store, bundle=bundle)
        targets = {call.args[0].document_id for call in store.update_block.call_args_list}
        assert targets == {"prot-1"}
        assert result.strategy == ALIGN_TO_SAP

    def test_non_auto_fixable_rejected(self, store):
        issue = _manual_issue(auto_fixable=False)
        result = AutoFixResolver().resolve([issue], [issue.id], BALANCED, store)
        assert result.fixed_count == 0
        assert result.rejected_issue_ids == [issue.id]
        store.update_block.assert_not_called()

    def test_unknown_ids_reported(self, issues, store):
        result = AutoFixResolver().resolve(issues, ["XDOC-doesnotexist"], BALANCED, store)
        assert result.unknown_issue_ids == ["XDOC-doesnotexist"]
        assert result.fixed_count == 0

    def test_unknown_strategy_raises(self, issues, store):
        with pytest.raises(ValueError):
            AutoFixResolver().resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], "merge", store)

    def test_store_required(self, issues):
        with pytest.raises(ValueError):
            AutoFixResolver().resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], BALANCED, None)

    def test_partial_failure_not_rolled_back(self, issues, store):
        """A failing patch leaves earlier patches applied."""
        store.update_block.side_effect = [None, RuntimeError("block locked")]
        result = AutoFixResolver().resolve(issues, ["PRIMARY_ENDPOINT_DRIFT"], BALANCED, store)

        assert result.fixed_count == 0
        assert len(result.applied) == 1
        assert len(result.failed) == 1
        assert result.failed[0].error == "block locked"
        assert len(result.changelog) == 1

    def test_caller_order_and_last_write(self, store):
        """Patches apply in selection order; later writes to a block come last."""
        first = _manual_issue("FIRST", [Patch(DocumentType.SAP, "sap-1", "one", block_id="B1", field="name")])
        second = _manual_issue("SECOND", [Patch(DocumentType.SAP, "sap-1", "two", block_id="B1", field="name")])
        AutoFixResolver().resolve([first, second], ["SECOND", "FIRST"], BALANCED, store)

        written = [call.args[0].new_text for call in store.update_block.call_args_list]
        assert written == ["two", "one"]

    def test_invalid_patch_fails_without_store_call(self, store):
        issue = _manual_issue(patches=[Patch(DocumentType.SAP, "sap-1", "value")])
        result = AutoFixResolver().resolve([issue], [issue.id], BALANCED, store)
        assert "Patch missing block id" in result.failed[0].error
        store.update_block.assert_not_called()

    def test_duplicate_selection_applied_once(self, issues, store):
        drift = next(i for i in issues if i.code == "PRIMARY_ENDPOINT_DRIFT")
        result = AutoFixResolver().resolve(issues, [drift.id, "PRIMARY_ENDPOINT_DRIFT"], BALANCED, store)
        assert result.fixed_count == 1
        assert store.update_block.call_count == 2

    def test_result_to_dict(self, issues, store):
        data = AutoFixResolver().resolve(issues, ["TEST_MISMATCH"], BALANCED, store).to_dict()
        assert data["fixedCount"] == 1
        assert data["applied"][0]["patch"]["newValue"] == "ANCOVA"
        assert data["description"].startswith("SAP:")


# =============================================================================
# Change Log
# =============================================================================

class TestChangeLog:
    """Test change tracking and descriptions."""

    def test_describe_no_changes(self):
        assert describe_changes([]) == "No changes made."

    def test_grouped_by_document_type(self):
        entries = [
            track_change(Patch(DocumentType.SAP, "sap-1", "ANCOVA", "test-P-EP-1", "test", "Log-rank"), "fix test"),
            track_change(Patch(DocumentType.PROTOCOL, "prot-1", "x" * 80, "P-EP-1", "name", "old"), "fix name"),
        ]
        text = describe_changes(entries)
        assert text.splitlines()[0] == "SAP:"
        assert "PROTOCOL:" in text
        assert 'Changed SAP test: "Log-rank" -> "ANCOVA". Reason: fix test' in text
        assert "x" * 50 + "..." in text

    def test_entry_to_dict(self):
        entry = track_change(Patch(DocumentType.SAP, "sap-1", "new", "B1"), "reason")
        data = entry.to_dict()
        assert data["documentType"] == "SAP"
        assert data["field"] == "content"
        assert data["oldValue"] == ""

    def test_validate_patch(self):
        assert validate_patch(Patch(DocumentType.SAP, "sap-1", "v", block_id="B1")) == []
        errors = validate_patch(Patch(DocumentType.SAP, "", "v"))
        assert "Patch missing document id" in errors
        assert "Patch missing block id" in errors
