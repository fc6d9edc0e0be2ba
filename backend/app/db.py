"""
SQLAlchemy models for the CrossDoc service.

Documents are stored as structured JSON (one row per document) with their
addressable text blocks alongside, so auto-fix patches can target a single
block and leave an audit trail.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, create_engine
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool

from app.config import settings


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class CrossDocDocument(Base):
    """A clinical-trial document (IB, Protocol, SAP, ICF or CSR) in structured form."""

    __tablename__ = "crossdoc_documents"

    id = Column(String(64), primary_key=True, default=_uuid)
    project_id = Column(String(255), nullable=True)
    document_type = Column(String(20), nullable=False)  # IB, PROTOCOL, SAP, ICF, CSR
    title = Column(String(500), nullable=True)
    version = Column(String(50), nullable=True)
    content = Column(JSONType, nullable=False)  # snake_case document model
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    blocks = relationship("DocumentBlock", back_populates="document", cascade="all, delete-orphan")
    edit_audits = relationship("BlockEditAudit", back_populates="document", cascade="all, delete-orphan")


class DocumentBlock(Base):
    """Addressable text block derived from an entity id in a document."""

    __tablename__ = "document_blocks"
    __table_args__ = (
        UniqueConstraint("document_id", "block_id", name="uq_document_blocks_document_block"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(64), ForeignKey("crossdoc_documents.id"), nullable=False)
    block_id = Column(String(255), nullable=False)
    section_id = Column(String(100), nullable=False)  # ENDPOINTS, PRIMARY_ANALYSIS, ...
    text = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    document = relationship("CrossDocDocument", back_populates="blocks")


class BlockEditAudit(Base):
    """Audit trail for block edits (manual or auto-fix)."""

    __tablename__ = "block_edit_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(64), ForeignKey("crossdoc_documents.id"), nullable=False)
    block_id = Column(String(255), nullable=False)
    field = Column(String(100), nullable=False)
    original_value = Column(JSONType, nullable=True)
    new_value = Column(JSONType, nullable=True)
    updated_by = Column(String(255), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    document = relationship("CrossDocDocument", back_populates="edit_audits")


class CrossDocValidation(Base):
    """Saved validation run (issues are kept for later auto-fix requests)."""

    __tablename__ = "crossdoc_validations"

    id = Column(String(64), primary_key=True, default=_uuid)
    project_id = Column(String(255), nullable=True)
    document_ids = Column(JSONType, nullable=False)  # {"PROTOCOL": "...", "SAP": "..."}
    summary = Column(JSONType, nullable=False)
    issues = Column(JSONType, nullable=False)
    failures = Column(JSONType, nullable=True)
    rules_executed = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# Indexes
Index("idx_crossdoc_documents_project_id", CrossDocDocument.project_id)
Index("idx_document_blocks_document_id", DocumentBlock.document_id)
Index("idx_block_edit_audit_document_id", BlockEditAudit.document_id)
Index("idx_crossdoc_validations_project_id", CrossDocValidation.project_id)


# Database engine and session factory
_engine = None
_SessionLocal = None


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        if settings.is_sqlite:
            _engine = create_engine(
                settings.database_url,
                echo=settings.debug,
                connect_args={"check_same_thread": False},
            )
        else:
            _engine = create_engine(
                settings.database_url,
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=300,
                pool_pre_ping=True,  # Test connection before using (auto-reconnect)
                echo=settings.debug,
            )
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def get_db() -> Session:
    """Get database session (dependency injection)."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_schema():
    """Initialize database schema (create tables if not exist)."""
    Base.metadata.create_all(bind=get_engine())
