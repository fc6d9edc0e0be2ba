"""
API tests for the CrossDoc service.

Uses a temporary SQLite database through a get_db override.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db import Base, BlockEditAudit, get_db
from app.main import app


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'crossdoc_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def protocol_payload():
    return {
        "document_type": "PROTOCOL",
        "project_id": "proj-1",
        "title": "Protocol v1",
        "content": {
            "id": "prot-1",
            "version": "1.0",
            "endpoints": [
                {"id": "P-EP-1", "type": "primary", "name": "Change in HbA1c",
                 "description": "Change from baseline in HbA1c at week 26", "dataType": "continuous"},
            ],
            "inclusionCriteria": ["Adults with type 2 diabetes mellitus"],
        },
    }


@pytest.fixture
def sap_payload():
    return {
        "document_type": "sap",
        "project_id": "proj-1",
        "content": {
            "id": "sap-1",
            "version": "1.0",
            "primaryEndpoints": [
                {"id": "S-EP-1", "name": "Overall survival", "description": "Time from randomization to death"},
            ],
            "statisticalTests": [{"endpointId": "P-EP-1", "test": "Log-rank test"}],
            "analysisPopulations": [{"id": "FAS", "name": "Full Analysis Set", "abbreviation": "FAS"}],
        },
    }


@pytest.fixture
def stored(client, protocol_payload, sap_payload):
    """Protocol and SAP stored for project proj-1."""
    assert client.post("/documents", json=protocol_payload).status_code == 200
    assert client.post("/documents", json=sap_payload).status_code == 200
    return client


def _validate(client, **extra):
    body = {"project_id": "proj-1", "protocol_id": "prot-1", "sap_id": "sap-1"}
    body.update(extra)
    return client.post("/crossdoc/validate", json=body)


# =============================================================================
# Documents
# =============================================================================

class TestDocuments:
    """Test document storage endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_derives_blocks(self, client, sap_payload):
        """Entity ids and statistical tests become addressable blocks."""
        response = client.post("/documents", json=sap_payload)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "sap-1"
        assert data["documentType"] == "SAP"
        assert data["content"]["primary_endpoints"][0]["name"] == "Overall survival"
        block_ids = {b["blockId"] for b in data["blocks"]}
        assert block_ids == {"S-EP-1", "test-P-EP-1", "FAS"}

    def test_unknown_document_type(self, client):
        response = client.post("/documents", json={"document_type": "MEMO", "content": {}})
        assert response.status_code == 400

    def test_duplicate_document_id(self, stored, protocol_payload):
        assert stored.post("/documents", json=protocol_payload).status_code == 400

    def test_get_missing_document(self, client):
        assert client.get("/documents/does-not-exist").status_code == 404

    def test_update_block(self, stored, session_factory):
        """Manual edits change the content and write an audit row."""
        response = stored.post("/documents/update-block", json={
            "document_id": "sap-1",
            "block_id": "S-EP-1",
            "new_text": "Change in HbA1c",
            "updated_by": "reviewer",
        })
        assert response.status_code == 200
        assert response.json()["oldValue"] == "Overall survival"

        document = stored.get("/documents/sap-1").json()
        assert document["content"]["primary_endpoints"][0]["name"] == "Change in HbA1c"
        block = next(b for b in document["blocks"] if b["blockId"] == "S-EP-1")
        assert block["text"] == "Change in HbA1c"

        db = session_factory()
        try:
            audits = db.query(BlockEditAudit).all()
            assert [(a.block_id, a.field, a.updated_by) for a in audits] == [("S-EP-1", "name", "reviewer")]
        finally:
            db.close()

    def test_update_unknown_block(self, stored):
        response = stored.post("/documents/update-block", json={
            "document_id": "sap-1", "block_id": "NOPE", "new_text": "x",
        })
        assert response.status_code == 404


# =============================================================================
# Validation
# =============================================================================

class TestValidate:
    """Test POST /crossdoc/validate."""

    def test_requires_two_documents(self, stored):
        response = stored.post("/crossdoc/validate", json={"protocol_id": "prot-1"})
        assert response.status_code == 400

    def test_unknown_document(self, stored):
        response = _validate(stored, sap_id="missing-sap")
        assert response.status_code == 404

    def test_wrong_document_type(self, stored):
        """A SAP id passed as the protocol is not found as a protocol."""
        response = _validate(stored, protocol_id="sap-1", sap_id="prot-1")
        assert response.status_code == 404

    def test_unknown_category(self, stored):
        assert _validate(stored, categories=["NOT_A_CATEGORY"]).status_code == 400

    def test_drift_reported(self, stored):
        response = _validate(stored)
        assert response.status_code == 200
        data = response.json()

        codes = [issue["code"] for issue in data["issues"]]
        assert "PRIMARY_ENDPOINT_DRIFT" in codes
        assert "TEST_MISMATCH" in codes
        assert data["summary"]["critical"] >= 1
        assert data["failures"] == []
        assert data["metadata"]["documentIds"] == {"PROTOCOL": "prot-1", "SAP": "sap-1"}
        assert data["metadata"]["validationId"]

    def test_category_filter(self, stored):
        data = _validate(stored, categories=["protocol_sap"]).json()
        assert {issue["category"] for issue in data["issues"]} == {"PROTOCOL_SAP"}

    def test_latest_validation_saved(self, stored):
        validation_id = _validate(stored).json()["metadata"]["validationId"]
        response = stored.get("/crossdoc/validations/proj-1")
        assert response.status_code == 200
        assert response.json()["validationId"] == validation_id

    def test_no_saved_validation(self, client):
        assert client.get("/crossdoc/validations/proj-unknown").status_code == 404


# =============================================================================
# Auto-fix
# =============================================================================

class TestAutoFix:
    """Test POST /crossdoc/auto-fix."""

    def test_fixes_all_auto_fixable(self, stored):
        """Without issue ids every auto-fixable issue is applied to the SAP."""
        _validate(stored)
        response = stored.post("/crossdoc/auto-fix", json={"project_id": "proj-1"})
        assert response.status_code == 200
        data = response.json()
        assert data["fixedCount"] == 2
        assert data["failed"] == []
        assert len(data["changelog"]) == 3

        sap = stored.get("/documents/sap-1").json()["content"]
        assert sap["primary_endpoints"][0]["name"] == "Change in HbA1c"
        assert sap["statistical_tests"][0]["test"] == "ANCOVA"

    def test_revalidation_is_clean_after_fix(self, stored):
        _validate(stored)
        stored.post("/crossdoc/auto-fix", json={"project_id": "proj-1"})
        codes = [issue["code"] for issue in _validate(stored).json()["issues"]]
        assert "PRIMARY_ENDPOINT_DRIFT" not in codes
        assert "TEST_MISMATCH" not in codes

    def test_align_to_sap_edits_protocol(self, stored):
        _validate(stored)
        response = stored.post("/crossdoc/auto-fix", json={
            "project_id": "proj-1",
            "strategy": "align_to_sap",
            "issue_ids": ["PRIMARY_ENDPOINT_DRIFT"],
        })
        assert response.json()["fixedCount"] == 1
        protocol = stored.get("/documents/prot-1").json()["content"]
        assert protocol["endpoints"][0]["name"] == "Overall survival"

    def test_non_fixable_selection_rejected(self, stored):
        _validate(stored)
        response = stored.post("/crossdoc/auto-fix", json={
            "project_id": "proj-1",
            "issue_ids": ["ANALYSIS_POPULATION_MISSING_IN_PROTOCOL"],
        })
        data = response.json()
        assert data["fixedCount"] == 0
        assert [r["code"] for r in data["rejected"]] == ["ANALYSIS_POPULATION_MISSING_IN_PROTOCOL"]

    def test_unknown_strategy(self, stored):
        _validate(stored)
        response = stored.post("/crossdoc/auto-fix", json={"project_id": "proj-1", "strategy": "merge"})
        assert response.status_code == 400

    def test_requires_saved_validation(self, client):
        response = client.post("/crossdoc/auto-fix", json={"project_id": "proj-unknown"})
        assert response.status_code == 404
