"""
CrossDoc service - REST shell around the cross-document consistency engine.

This package provides:
- Structured storage of IB, Protocol, SAP, ICF and CSR documents
- Addressable document blocks with an edit audit trail
- Validation runs and auto-fix through crossdoc_analyzer
- SQLite by default, PostgreSQL via DATABASE_URL
"""

__version__ = "1.0.0"
