"""
Unit tests for the entity mappers (objectives, endpoints, doses).
"""

import pytest

from crossdoc_analyzer.alignment.dose_map import (
    compare_doses,
    map_doses,
    normalize_dose,
    normalize_frequency,
    normalize_route,
    score_regimen,
)
from crossdoc_analyzer.alignment.endpoints_map import (
    DESCRIPTION_WEIGHT,
    NAME_WEIGHT,
    endpoint_similarity,
    map_endpoints,
)
from crossdoc_analyzer.alignment.similarity import combined_similarity
from crossdoc_analyzer.alignment.objectives_map import map_objectives
from crossdoc_analyzer.models.bundle import (
    CsrDocument,
    DosingInfo,
    IbDocument,
    ProtocolDocument,
    SapDocument,
    TreatmentArm,
)
from crossdoc_analyzer.rules.context import build_rule_context
from crossdoc_analyzer.models.alignment import AlignmentThresholds
from crossdoc_analyzer.models.bundle import CrossDocBundle


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def ib() -> IbDocument:
    return IbDocument.from_dict({
        "id": "ib-1",
        "objectives": [
            {"id": "IB-OBJ-1", "type": "primary", "description": "To evaluate efficacy of drug X"},
            {"id": "IB-OBJ-2", "type": "secondary", "description": "To assess the safety and tolerability of drug X"},
            {"id": "IB-OBJ-3", "type": "secondary", "description": "To characterize pharmacokinetics in adolescents"},
        ],
        "dosingInformation": [
            {"id": "IB-DOSE-1", "dose": "10 mg", "route": "oral", "frequency": "once daily"},
        ],
    })


@pytest.fixture
def protocol() -> ProtocolDocument:
    return ProtocolDocument.from_dict({
        "id": "prot-1",
        "objectives": [
            {"id": "P-OBJ-1", "type": "primary", "description": "To evaluate the efficacy of drug X"},
            {"id": "P-OBJ-2", "type": "secondary", "description": "To assess safety and tolerability of drug X"},
        ],
        "endpoints": [
            {"id": "P-EP-1", "type": "primary", "name": "Change in HbA1c",
             "description": "Change from baseline in HbA1c at week 26", "dataType": "continuous"},
            {"id": "P-EP-2", "type": "secondary", "name": "Body weight",
             "description": "Change from baseline in body weight at week 26"},
            {"id": "P-EP-3", "type": "secondary", "name": "Body weight",
             "description": "Change from baseline in body weight at week 26"},
        ],
        "arms": [
            {"id": "ARM-A", "name": "Drug X 10 mg", "dose": "10mg", "route": "oral", "frequency": "QD"},
            {"id": "ARM-B", "name": "Placebo", "route": "oral", "frequency": "QD"},
        ],
    })


@pytest.fixture
def sap() -> SapDocument:
    return SapDocument.from_dict({
        "id": "sap-1",
        "primaryEndpoints": [
            {"id": "S-EP-1", "name": "Change in HbA1c", "description": "Change from baseline in HbA1c at week 26"},
        ],
        "secondaryEndpoints": [
            {"id": "S-EP-2", "name": "Body weight", "description": "Change from baseline in body weight at week 26"},
        ],
    })


# =============================================================================
# Objectives
# =============================================================================

class TestMapObjectives:
    """Test IB to Protocol objective alignment."""

    def test_one_link_per_ib_objective(self, ib, protocol):
        """Every IB objective gets exactly one link."""
        links = map_objectives(ib, protocol)
        assert [link.left_id for link in links] == ["IB-OBJ-1", "IB-OBJ-2", "IB-OBJ-3"]

    def test_primary_scenario_aligned(self, ib, protocol):
        """Near-identical primary objectives align with a high score."""
        link = map_objectives(ib, protocol)[0]
        assert link.right_id == "P-OBJ-1"
        assert link.aligned is True
        assert link.score > 0.8

    def test_unmatched_objective_still_linked(self, ib, protocol):
        """An objective with no counterpart has a null partner."""
        link = map_objectives(ib, protocol)[2]
        assert link.right_id is None
        assert link.aligned is False
        assert link.score == 0.0

    def test_empty_right_side(self, ib):
        """Empty Protocol objectives yield all-unaligned links."""
        links = map_objectives(ib, ProtocolDocument(id="prot-empty"))
        assert len(links) == len(ib.objectives)
        assert not any(link.aligned for link in links)

    def test_missing_protocol_behaves_like_empty(self, ib):
        """No Protocol still produces one link per IB objective."""
        links = map_objectives(ib, None)
        assert len(links) == 3
        assert all(link.right_id is None for link in links)

    def test_missing_ib(self, protocol):
        """No IB means no links."""
        assert map_objectives(None, protocol) == []

    def test_type_constrained(self):
        """A primary objective never matches a secondary one."""
        ib = IbDocument.from_dict({"id": "ib", "objectives": [
            {"id": "O1", "type": "primary", "description": "To assess overall survival"}]})
        protocol = ProtocolDocument.from_dict({"id": "p", "objectives": [
            {"id": "O2", "type": "secondary", "description": "To assess overall survival"}]})
        link = map_objectives(ib, protocol)[0]
        assert link.aligned is False

    def test_malformed_objective_skipped(self, protocol, caplog):
        """Objectives without id or text are skipped with a warning."""
        ib = IbDocument.from_dict({"id": "ib", "objectives": [
            {"type": "primary", "description": "No id here"},
            {"id": "O-EMPTY", "type": "primary", "description": ""},
            {"id": "O-OK", "type": "primary", "description": "To evaluate efficacy of drug X"},
        ]})
        with caplog.at_level("WARNING"):
            links = map_objectives(ib, protocol)
        assert [link.left_id for link in links] == ["O-OK"]
        assert "malformed" in caplog.text

    def test_threshold_is_respected(self, ib, protocol):
        """A threshold above every score leaves everything unaligned."""
        links = map_objectives(ib, protocol, threshold=1.01)
        assert not any(link.aligned for link in links)


# =============================================================================
# Endpoints
# =============================================================================

class TestMapEndpoints:
    """Test Protocol to SAP/CSR endpoint alignment."""

    def test_primary_aligned_to_sap(self, protocol, sap):
        """Matching primary endpoints align."""
        links = map_endpoints(protocol, sap)
        primary = links[0]
        assert primary.type == "primary"
        assert primary.sap_endpoint_id == "S-EP-1"
        assert primary.sap_aligned and primary.aligned

    def test_secondary_pool_consumed_one_to_one(self, protocol, sap):
        """A SAP secondary endpoint is linked to one Protocol endpoint only."""
        links = map_endpoints(protocol, sap)
        assert links[1].sap_endpoint_id == "S-EP-2"
        assert links[2].sap_endpoint_id is None
        assert links[2].aligned is False

    def test_category_constrained(self, protocol):
        """A Protocol primary endpoint is not matched against the SAP secondary pool."""
        sap = SapDocument.from_dict({"id": "sap", "secondaryEndpoints": [
            {"id": "S-X", "name": "Change in HbA1c", "description": "Change from baseline in HbA1c at week 26"}]})
        primary = map_endpoints(protocol, sap)[0]
        assert primary.sap_endpoint_id is None
        assert primary.aligned is False

    def test_csr_extension(self, protocol, sap):
        """CSR partners are recorded and drive the aggregate flag."""
        csr = CsrDocument.from_dict({"id": "csr", "reportedPrimaryEndpoints": [
            {"id": "C-EP-1", "name": "Change in HbA1c", "result": "-1.1%"}]})
        links = map_endpoints(protocol, sap, csr)
        assert links[0].csr_endpoint_id == "C-EP-1"
        assert links[0].aligned is True
        # Secondary endpoints were not reported in the CSR
        assert links[1].sap_aligned is True
        assert links[1].csr_endpoint_id is None
        assert links[1].aligned is False

    def test_missing_sap_description_compares_names(self, protocol):
        """Same name without a SAP description aligns on the name alone."""
        sap = SapDocument.from_dict({"id": "sap", "primaryEndpoints": [
            {"id": "S-EP-1", "name": "Change in HbA1c"}]})
        primary = map_endpoints(protocol, sap)[0]
        assert primary.sap_endpoint_id == "S-EP-1"
        assert primary.sap_score == pytest.approx(1.0)
        assert primary.aligned is True

    def test_missing_protocol_description_compares_names(self, sap):
        protocol = ProtocolDocument.from_dict({"id": "p", "endpoints": [
            {"id": "EP-1", "type": "primary", "name": "Change in HbA1c"}]})
        assert map_endpoints(protocol, sap)[0].sap_endpoint_id == "S-EP-1"

    def test_name_and_description_weighted(self):
        """With both descriptions present the name weighs 0.6 and the description 0.4."""
        doc = ProtocolDocument.from_dict({"id": "p", "endpoints": [
            {"id": "EP-1", "type": "primary", "name": "Overall survival",
             "description": "Time from randomization to death from any cause"}]})
        sap = SapDocument.from_dict({"id": "sap", "primaryEndpoints": [
            {"id": "S-EP-1", "name": "Overall survival", "description": "Change from baseline in HbA1c"}]})
        expected = NAME_WEIGHT + DESCRIPTION_WEIGHT * combined_similarity(
            "Time from randomization to death from any cause", "Change from baseline in HbA1c")
        assert endpoint_similarity(doc.endpoints[0], sap.primary_endpoints[0]) == pytest.approx(expected)
        assert expected < 0.7
        assert map_endpoints(doc, sap)[0].aligned is False

    def test_no_protocol(self, sap):
        """No Protocol means no links."""
        assert map_endpoints(None, sap) == []

    def test_one_link_per_well_formed_endpoint(self, sap):
        """Malformed endpoints are skipped, the rest still linked."""
        protocol = ProtocolDocument.from_dict({"id": "p", "endpoints": [
            {"id": "", "type": "primary", "name": "No id"},
            {"id": "EP-1", "type": "primary", "name": "Change in HbA1c",
             "description": "Change from baseline in HbA1c at week 26"},
        ]})
        links = map_endpoints(protocol, sap)
        assert [link.protocol_endpoint_id for link in links] == ["EP-1"]


# =============================================================================
# Doses
# =============================================================================

class TestDoseNormalization:
    """Test the normalization pre-pass."""

    @pytest.mark.parametrize("raw", ["10mg", "10 mg", "10 milligrams", "10 Milligram"])
    def test_strength_notation(self, raw):
        """Strength spellings collapse to one form."""
        assert normalize_dose(raw) == "10mg"

    def test_microgram_notation(self):
        """Microgram spellings collapse to mcg."""
        assert normalize_dose("250 µg") == "250mcg"
        assert normalize_dose("250 micrograms") == "250mcg"

    @pytest.mark.parametrize("raw,expected", [
        ("PO", "oral"), ("IV", "intravenous"), ("SC", "subcutaneous"), ("IM", "intramuscular"), ("oral", "oral"),
    ])
    def test_route_abbreviations(self, raw, expected):
        """Route abbreviations expand."""
        assert normalize_route(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("QD", "once daily"), ("BID", "twice daily"), ("TID", "three times daily"),
        ("QID", "four times daily"), ("QW", "once weekly"), ("Q2W", "every 2 weeks"), ("PRN", "as needed"),
    ])
    def test_frequency_shorthand(self, raw, expected):
        """Frequency shorthand expands."""
        assert normalize_frequency(raw) == expected


class TestCompareDoses:
    """Test numeric strength comparison."""

    def test_equal_strengths(self):
        assert compare_doses("10 mg", "10 milligrams") == 1.0

    def test_within_tolerance(self):
        """Amounts within 10% score 0.9."""
        assert compare_doses("100 mg", "95 mg") == 0.9

    def test_different_amounts(self):
        assert compare_doses("10 mg", "20 mg") == 0.5

    def test_different_units(self):
        assert compare_doses("10 mg", "10 mcg") < 0.5


class TestMapDoses:
    """Test IB dose to Protocol arm alignment."""

    def test_dose_scenario_aligned(self, ib, protocol):
        """'10 mg / oral / once daily' aligns with '10mg / oral / QD'."""
        links = map_doses(ib, protocol)
        assert len(links) == 1
        assert links[0].right_id == "ARM-A"
        assert links[0].aligned is True
        assert links[0].score > 0.7

    def test_reweighting_over_present_fields(self):
        """Fields missing on either side do not count against the score."""
        dose = DosingInfo(id="D1", dose="10 mg", route="oral")
        arm = TreatmentArm(id="A1", name="Arm", dose="10mg")
        assert score_regimen(dose, arm) == 1.0

    def test_no_shared_fields_scores_zero(self):
        dose = DosingInfo(id="D1", dose="10 mg")
        arm = TreatmentArm(id="A1", name="Arm", route="oral")
        assert score_regimen(dose, arm) == 0.0

    def test_unmatched_dose(self, protocol):
        """A regimen with no similar arm keeps a null partner."""
        ib = IbDocument.from_dict({"id": "ib", "dosingInformation": [
            {"id": "D-HIGH", "dose": "50 mg", "route": "IV", "frequency": "Q2W"}]})
        link = map_doses(ib, protocol)[0]
        assert link.right_id is None
        assert link.aligned is False

    def test_without_protocol(self, ib):
        """Every IB dose is still linked without a Protocol."""
        links = map_doses(ib, None)
        assert len(links) == 1
        assert links[0].aligned is False


class TestBuildRuleContext:
    """Test the context builder."""

    def test_runs_every_mapper(self, ib, protocol, sap):
        """Alignments are populated for every document pair present."""
        bundle = CrossDocBundle(ib=ib, protocol=protocol, sap=sap)
        ctx = build_rule_context(bundle, AlignmentThresholds())
        assert len(ctx.alignments.objectives) == 3
        assert len(ctx.alignments.endpoints) == 3
        assert len(ctx.alignments.doses) == 1
        assert ctx.bundle is bundle

    def test_empty_bundle(self):
        """An empty bundle has no alignments."""
        ctx = build_rule_context(CrossDocBundle())
        assert ctx.alignments.objectives == ()
        assert ctx.alignments.endpoints == ()
        assert ctx.alignments.doses == ()

    def test_context_is_immutable(self):
        """The context cannot be reassigned by a rule."""
        ctx = build_rule_context(CrossDocBundle())
        with pytest.raises(Exception):
            ctx.bundle = None
