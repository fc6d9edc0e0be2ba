"""
Document router.

Endpoints:
- POST /documents - Store a structured document
- GET /documents/{document_id} - Get a document with its blocks
- POST /documents/update-block - Update one block (manual edit)
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db import get_db
from app.services.document_store import (
    BlockNotFoundError,
    DocumentNotFoundError,
    DocumentStoreError,
    SqlDocumentStore,
    document_to_dict,
)
from crossdoc_analyzer.autofix import BlockUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateDocumentRequest(BaseModel):
    """Request to store a document."""
    document_type: str  # IB, PROTOCOL, SAP, ICF, CSR
    content: Dict[str, Any]
    project_id: Optional[str] = None
    title: Optional[str] = None


class UpdateBlockRequest(BaseModel):
    """Request to update a single block."""
    document_id: str
    block_id: str
    new_text: str
    field: Optional[str] = None  # Defaults to the block's text field
    updated_by: Optional[str] = None


# =============================================================================
# Endpoints
# =============================================================================

@router.post("")
async def create_document(request: CreateDocumentRequest, db: Session = Depends(get_db)):
    store = SqlDocumentStore(db)
    try:
        document = store.create_document(
            request.document_type,
            request.content,
            project_id=request.project_id,
            title=request.title,
        )
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown document type: {request.document_type}")
    except DocumentStoreError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return document_to_dict(document, include_blocks=True)


@router.get("/{document_id}")
async def get_document(document_id: str, db: Session = Depends(get_db)):
    try:
        document = SqlDocumentStore(db).get_document(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return document_to_dict(document, include_blocks=True)


@router.post("/update-block")
async def update_block(request: UpdateBlockRequest, db: Session = Depends(get_db)):
    """Update a block's text (or one field of it) and record an audit entry."""
    store = SqlDocumentStore(db, updated_by=request.updated_by or "user")
    try:
        change = store.update_block(BlockUpdate(
            document_id=request.document_id,
            block_id=request.block_id,
            new_text=request.new_text,
            field=request.field,
        ))
    except (DocumentNotFoundError, BlockNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update block: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update block: {str(e)}")

    return {"success": True, **change}
