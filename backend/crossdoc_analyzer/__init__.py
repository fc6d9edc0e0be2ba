"""
CrossDoc Analyzer - Cross-Document Consistency Engine

Checks a clinical-trial document package (IB, Protocol, SAP, ICF, CSR and
the study flow) for mutual consistency.

Pipeline:
    1. Alignment - match objectives, endpoints and doses across documents
    2. Rules - evaluate independent, fail-isolated rules on the aligned data
    3. Auto-fix - apply deterministic patches for selected issues

Components:
    - alignment/: similarity metrics and entity mappers
    - rules/: rule context, typed registry and rule sets by document pair
    - engine: CrossDocEngine (runs the registry, summarizes issues)
    - autofix/: patch generators, change log and AutoFixResolver

Usage:
    from crossdoc_analyzer import CrossDocEngine, CrossDocBundle

    engine = CrossDocEngine()
    result = engine.run(CrossDocBundle.from_dict(documents))
    for issue in result.issues:
        print(issue.severity.value, issue.code, issue.message)
"""

__version__ = "1.0.0"

from .models.bundle import CrossDocBundle, DocumentType
from .models.alignment import AlignmentThresholds
from .models.issues import Category, CrossDocIssue, Severity
from .engine import CrossDocEngine, ValidationResult
from .autofix import AutoFixResolver, AutoFixResult, BlockStore, BlockUpdate

__all__ = [
    "CrossDocBundle",
    "DocumentType",
    "AlignmentThresholds",
    "Category",
    "CrossDocIssue",
    "Severity",
    "CrossDocEngine",
    "ValidationResult",
    "AutoFixResolver",
    "AutoFixResult",
    "BlockStore",
    "BlockUpdate",
]
