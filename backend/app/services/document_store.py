"""
SQL-backed document store for cross-document validation.

Stores each document's structured content, derives addressable blocks from
entity ids and applies block updates (with an audit row per edit). It is the
BlockStore collaborator handed to AutoFixResolver.

Block ids:
- entities with an id (objectives, endpoints, arms, visits, ...) use it
- analysis populations use their abbreviation (FAS, PPS, SAF)
- SAP statistical tests use statistical_test_block_id(endpoint_id)

Usage:
    store = SqlDocumentStore(db)
    document = store.create_document("PROTOCOL", payload, project_id="proj-1")
    bundle = store.load_bundle({DocumentType.PROTOCOL: document.id, ...})
"""

import copy
import logging
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.db import BlockEditAudit, CrossDocDocument, CrossDocValidation, DocumentBlock
from crossdoc_analyzer.autofix.patches import statistical_test_block_id
from crossdoc_analyzer.autofix.resolver import BlockStore, BlockUpdate
from crossdoc_analyzer.engine import ValidationResult
from crossdoc_analyzer.models.bundle import (
    BUNDLE_SLOTS,
    CrossDocBundle,
    CsrDocument,
    DocumentType,
    IbDocument,
    IcfDocument,
    ProtocolDocument,
    SapDocument,
    StudyFlow,
)

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Base error for document store operations."""


class DocumentNotFoundError(DocumentStoreError):
    pass


class BlockNotFoundError(DocumentStoreError):
    pass


DOCUMENT_MODELS = {
    DocumentType.IB: IbDocument,
    DocumentType.PROTOCOL: ProtocolDocument,
    DocumentType.SAP: SapDocument,
    DocumentType.ICF: IcfDocument,
    DocumentType.CSR: CsrDocument,
}

# (collection key, section id, default text field) per document type
BLOCK_COLLECTIONS: Dict[DocumentType, List[Tuple[str, str, str]]] = {
    DocumentType.IB: [
        ("objectives", "OBJECTIVES", "description"),
        ("dosing_information", "DOSING", "dose"),
    ],
    DocumentType.PROTOCOL: [
        ("objectives", "OBJECTIVES", "description"),
        ("endpoints", "ENDPOINTS", "name"),
        ("arms", "TREATMENT_ARMS", "name"),
        ("visit_schedule", "VISIT_SCHEDULE", "name"),
        ("analysis_populations", "ANALYSIS_POPULATIONS", "name"),
    ],
    DocumentType.SAP: [
        ("primary_endpoints", "PRIMARY_ANALYSIS", "name"),
        ("secondary_endpoints", "SECONDARY_ANALYSIS", "name"),
        ("statistical_tests", "STATISTICAL_METHODS", "test"),
        ("analysis_populations", "ANALYSIS_SETS", "name"),
    ],
    DocumentType.ICF: [
        ("procedure_descriptions", "PROCEDURES", "description"),
    ],
    DocumentType.CSR: [
        ("reported_primary_endpoints", "RESULTS", "name"),
        ("reported_secondary_endpoints", "RESULTS", "name"),
        ("analysis_sets", "ANALYSIS_SETS", "name"),
    ],
}


def normalize_content(document_type: DocumentType, payload: Dict[str, Any], document_id: str) -> Dict[str, Any]:
    """Parse a payload (camelCase or snake_case) into the stored snake_case form."""
    parser = DOCUMENT_MODELS[document_type]
    content = asdict(parser.from_dict(payload))
    content["id"] = document_id
    return content


def _entity_block_id(collection: str, entity: Dict[str, Any]) -> Optional[str]:
    if collection == "statistical_tests":
        return statistical_test_block_id(entity["endpoint_id"]) if entity.get("endpoint_id") else None
    if collection in ("analysis_populations", "analysis_sets"):
        return entity.get("abbreviation") or entity.get("id") or None
    return entity.get("id") or None


def iter_blocks(document_type: DocumentType, content: Dict[str, Any]):
    """Yield (block_id, section_id, text_field, entity) for every addressable entity."""
    for collection, section_id, text_field in BLOCK_COLLECTIONS[document_type]:
        for entity in content.get(collection) or []:
            block_id = _entity_block_id(collection, entity)
            if block_id:
                yield block_id, section_id, text_field, entity


def _find_entity(
    document_type: DocumentType, content: Dict[str, Any], block_id: str
) -> Optional[Tuple[str, Dict[str, Any]]]:
    for found_id, _, text_field, entity in iter_blocks(document_type, content):
        if found_id == block_id:
            return text_field, entity
    return None


def document_to_dict(document: CrossDocDocument, include_blocks: bool = False) -> Dict[str, Any]:
    """Convert to API response format."""
    result = {
        "id": document.id,
        "projectId": document.project_id,
        "documentType": document.document_type,
        "title": document.title,
        "version": document.version,
        "content": document.content,
        "createdAt": document.created_at.isoformat() if document.created_at else None,
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }
    if include_blocks:
        result["blocks"] = [
            {"blockId": b.block_id, "sectionId": b.section_id, "text": b.text}
            for b in document.blocks
        ]
    return result


def validation_to_dict(validation: CrossDocValidation) -> Dict[str, Any]:
    return {
        "validationId": validation.id,
        "projectId": validation.project_id,
        "documentIds": validation.document_ids,
        "summary": validation.summary,
        "issues": validation.issues,
        "failures": validation.failures or [],
        "rulesExecuted": validation.rules_executed,
        "validatedAt": validation.created_at.isoformat() if validation.created_at else None,
    }


class SqlDocumentStore(BlockStore):
    """Document storage on a SQLAlchemy session."""

    def __init__(self, db: Session, updated_by: str = "auto-fix"):
        self.db = db
        self.updated_by = updated_by

    # =========================================================================
    # Documents
    # =========================================================================

    def create_document(
        self,
        document_type: str,
        payload: Dict[str, Any],
        project_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> CrossDocDocument:
        """Store a document and derive its blocks."""
        doc_type = DocumentType(str(document_type).upper())
        document = CrossDocDocument(
            project_id=project_id,
            document_type=doc_type.value,
            title=title,
        )
        document.id = str(payload.get("id") or uuid.uuid4())

        if self.db.get(CrossDocDocument, document.id) is not None:
            raise DocumentStoreError(f"Document already exists: {document.id}")

        document.content = normalize_content(doc_type, payload, document.id)
        document.version = document.content.get("version")

        seen = set()
        for block_id, section_id, text_field, entity in iter_blocks(doc_type, document.content):
            if block_id in seen:
                logger.warning(f"Duplicate block id {block_id} in {doc_type.value} {document.id}; keeping first")
                continue
            seen.add(block_id)
            document.blocks.append(DocumentBlock(
                block_id=block_id,
                section_id=section_id,
                text=entity.get(text_field),
            ))

        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Stored {doc_type.value} document {document.id} with {len(seen)} blocks")
        return document

    def get_document(self, document_id: str) -> CrossDocDocument:
        document = self.db.get(CrossDocDocument, document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return document

    def load_bundle(
        self,
        document_ids: Dict[DocumentType, str],
        study_flow: Optional[Dict[str, Any]] = None,
    ) -> CrossDocBundle:
        """
        Build a bundle from stored documents.

        Raises:
            DocumentNotFoundError: An id does not exist or has another type
        """
        slots: Dict[str, Any] = {}
        for doc_type, document_id in document_ids.items():
            doc_type = DocumentType(doc_type)
            document = self.get_document(document_id)
            if document.document_type != doc_type.value:
                raise DocumentNotFoundError(
                    f"Document {document_id} is a {document.document_type}, not a {doc_type.value}"
                )
            slots[BUNDLE_SLOTS[doc_type]] = document.content
        bundle = CrossDocBundle.from_dict(slots)
        if study_flow:
            bundle = CrossDocBundle(
                ib=bundle.ib,
                protocol=bundle.protocol,
                sap=bundle.sap,
                icf=bundle.icf,
                csr=bundle.csr,
                study_flow=StudyFlow.from_dict(study_flow),
            )
        return bundle

    # =========================================================================
    # Block updates (BlockStore)
    # =========================================================================

    @retry(
        stop=stop_after_attempt(settings.db_retry_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying block update (attempt {retry_state.attempt_number}): {retry_state.outcome.exception()}"
        ),
    )
    def update_block(self, update: BlockUpdate) -> Dict[str, Any]:
        """
        Replace one field of a block and record an audit row.

        Raises:
            DocumentNotFoundError: Unknown document
            BlockNotFoundError: The document has no such block
        """
        try:
            document = self.get_document(update.document_id)
            doc_type = DocumentType(document.document_type)

            block = (
                self.db.query(DocumentBlock)
                .filter(DocumentBlock.document_id == document.id, DocumentBlock.block_id == update.block_id)
                .first()
            )
            content = copy.deepcopy(document.content)
            found = _find_entity(doc_type, content, update.block_id)
            if block is None or found is None:
                raise BlockNotFoundError(f"Block {update.block_id} not found in document {update.document_id}")

            text_field, entity = found
            field = update.field or text_field
            old_value = entity.get(field)
            entity[field] = update.new_text

            document.content = content
            flag_modified(document, "content")  # Tell SQLAlchemy the JSON was modified
            document.updated_at = datetime.utcnow()
            block.text = entity.get(text_field)

            self.db.add(BlockEditAudit(
                document_id=document.id,
                block_id=update.block_id,
                field=field,
                original_value=old_value,
                new_value=update.new_text,
                updated_by=self.updated_by,
                updated_at=datetime.utcnow(),
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Updated {doc_type.value} {document.id} block {update.block_id}.{field}")
        return {
            "documentId": document.id,
            "blockId": update.block_id,
            "field": field,
            "oldValue": old_value,
            "newValue": update.new_text,
        }

    # =========================================================================
    # Validation history
    # =========================================================================

    def save_validation(
        self,
        project_id: Optional[str],
        document_ids: Dict[DocumentType, str],
        result: ValidationResult,
    ) -> CrossDocValidation:
        data = result.to_dict()
        validation = CrossDocValidation(
            project_id=project_id,
            document_ids={DocumentType(t).value: i for t, i in document_ids.items()},
            summary=data["summary"],
            issues=data["issues"],
            failures=data["failures"],
            rules_executed=result.rules_executed,
        )
        self.db.add(validation)
        self.db.commit()
        self.db.refresh(validation)
        return validation

    def latest_validation(self, project_id: str) -> Optional[CrossDocValidation]:
        return (
            self.db.query(CrossDocValidation)
            .filter(CrossDocValidation.project_id == project_id)
            .order_by(CrossDocValidation.created_at.desc())
            .first()
        )
