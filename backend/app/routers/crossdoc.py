"""
Cross-document validation router.

Endpoints:
- POST /crossdoc/validate - Validate a set of stored documents
- POST /crossdoc/auto-fix - Apply auto-fixes for a project's latest validation
- GET /crossdoc/validations/{project_id} - Latest saved validation for a project
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.services.document_store import DocumentNotFoundError, SqlDocumentStore, validation_to_dict
from crossdoc_analyzer.autofix import BALANCED, AutoFixResolver
from crossdoc_analyzer.engine import CrossDocEngine
from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue
from crossdoc_analyzer.rules import default_registry, load_rule_config

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_DOCUMENTS = 2


# =============================================================================
# Request/Response Models
# =============================================================================

class ValidateRequest(BaseModel):
    """Request to validate a document package."""
    project_id: Optional[str] = None
    ib_id: Optional[str] = None
    protocol_id: Optional[str] = None
    sap_id: Optional[str] = None
    icf_id: Optional[str] = None
    csr_id: Optional[str] = None
    categories: Optional[List[str]] = None
    study_flow: Optional[Dict[str, Any]] = None  # Inline visit/procedure model

    def document_ids(self) -> Dict[DocumentType, str]:
        ids = {
            DocumentType.IB: self.ib_id,
            DocumentType.PROTOCOL: self.protocol_id,
            DocumentType.SAP: self.sap_id,
            DocumentType.ICF: self.icf_id,
            DocumentType.CSR: self.csr_id,
        }
        return {doc_type: doc_id for doc_type, doc_id in ids.items() if doc_id}


class AutoFixRequest(BaseModel):
    """Request to apply auto-fixes to a project's documents."""
    project_id: str
    strategy: str = BALANCED
    issue_ids: Optional[List[str]] = None  # None = every auto-fixable issue
    updated_by: Optional[str] = None


# =============================================================================
# Engine
# =============================================================================

@lru_cache()
def get_crossdoc_engine() -> CrossDocEngine:
    """Engine configured from settings and the rule config file."""
    registry = default_registry(load_rule_config(settings.rules_config_path))
    return CrossDocEngine(
        registry=registry,
        thresholds=settings.alignment_thresholds,
        max_workers=settings.max_workers,
    )


def _parse_categories(categories: Optional[List[str]]) -> Optional[List[Category]]:
    if categories is None:
        return None
    try:
        return [Category(c.upper()) for c in categories]
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown category in {categories}. Valid: {[c.value for c in Category]}"
        )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/validate")
async def validate_documents(
    request: ValidateRequest,
    db: Session = Depends(get_db),
    engine: CrossDocEngine = Depends(get_crossdoc_engine),
):
    """
    Run cross-document validation on stored documents.

    At least two document ids are required. When a project id is given the
    run is saved so it can be auto-fixed later.
    """
    document_ids = request.document_ids()
    if len(document_ids) < MIN_DOCUMENTS:
        raise HTTPException(
            status_code=400,
            detail=f"At least {MIN_DOCUMENTS} document ids are required for cross-document validation"
        )

    categories = _parse_categories(request.categories)
    store = SqlDocumentStore(db)

    try:
        bundle = store.load_bundle(document_ids, study_flow=request.study_flow)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    result = engine.run(bundle, categories=categories)
    data = result.to_dict()

    validation_id = None
    if request.project_id:
        validation_id = store.save_validation(request.project_id, document_ids, result).id

    return {
        "summary": data["summary"],
        "issues": data["issues"],
        "failures": data["failures"],
        "metadata": {
            "validationId": validation_id,
            "projectId": request.project_id,
            "documentIds": {t.value: i for t, i in document_ids.items()},
            "rulesExecuted": data["rulesExecuted"],
            "durationSeconds": data["durationSeconds"],
            "validatedAt": datetime.utcnow().isoformat(),
        },
    }


@router.post("/auto-fix")
async def auto_fix(request: AutoFixRequest, db: Session = Depends(get_db)):
    """
    Apply auto-fixes for issues from the project's latest validation.

    Patches are regenerated from the stored documents for the requested
    strategy. Non-auto-fixable selections are reported as rejected.
    """
    store = SqlDocumentStore(db, updated_by=request.updated_by or "auto-fix")
    validation = store.latest_validation(request.project_id)
    if validation is None:
        raise HTTPException(status_code=404, detail=f"No validation found for project: {request.project_id}")

    issues = [CrossDocIssue.from_dict(i) for i in validation.issues]
    issue_ids = request.issue_ids
    if issue_ids is None:
        issue_ids = [issue.id for issue in issues if issue.auto_fixable]

    try:
        bundle = store.load_bundle({DocumentType(t): i for t, i in validation.document_ids.items()})
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        result = AutoFixResolver().resolve(issues, issue_ids, request.strategy, store, bundle=bundle)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()


@router.get("/validations/{project_id}")
async def get_latest_validation(project_id: str, db: Session = Depends(get_db)):
    """Latest saved validation run for a project."""
    validation = SqlDocumentStore(db).latest_validation(project_id)
    if validation is None:
        raise HTTPException(status_code=404, detail=f"No validation found for project: {project_id}")
    return validation_to_dict(validation)
