"""
Change log for auto-fix runs.

Every applied patch is recorded with the document, field, old and new value
and the reason (the issue it resolves), and can be rendered as a
human-readable summary grouped by document type.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Patch

DISPLAY_LIMIT = 50


@dataclass
class ChangeLogEntry:
    """One recorded change to a document block."""
    document_type: DocumentType
    document_id: str
    field: str
    old_value: str
    new_value: str
    reason: str
    block_id: str = ""
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "documentType": DocumentType(self.document_type).value,
            "documentId": self.document_id,
            "blockId": self.block_id or None,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "reason": self.reason,
        }


def track_change(patch: Patch, reason: str) -> ChangeLogEntry:
    return ChangeLogEntry(
        document_type=DocumentType(patch.document_type),
        document_id=patch.document_id,
        block_id=patch.block_id or "",
        field=patch.field or "content",
        old_value=patch.old_value or "",
        new_value=patch.new_value,
        reason=reason,
    )


def _truncate(text: str, limit: int = DISPLAY_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def describe_change(entry: ChangeLogEntry) -> str:
    return (
        f'Changed {DocumentType(entry.document_type).value} {entry.field}: '
        f'"{_truncate(entry.old_value)}" -> "{_truncate(entry.new_value)}". '
        f"Reason: {entry.reason}"
    )


def describe_changes(entries: List[ChangeLogEntry]) -> str:
    """Readable summary of changes, grouped by document type."""
    if not entries:
        return "No changes made."

    grouped: Dict[str, List[ChangeLogEntry]] = {}
    for entry in entries:
        grouped.setdefault(DocumentType(entry.document_type).value, []).append(entry)

    lines = []
    for document_type, changes in grouped.items():
        lines.append(f"{document_type}:")
        lines.extend(f"  - {describe_change(change)}" for change in changes)
    return "\n".join(lines)


def validate_patch(patch: Patch) -> List[str]:
    """Structural problems that make a patch unsafe to apply (empty when valid)."""
    errors = []
    if not patch.document_type:
        errors.append("Patch missing document type")
    if not patch.document_id:
        errors.append("Patch missing document id")
    if not patch.block_id:
        errors.append("Patch missing block id")
    if patch.new_value is None:
        errors.append("Patch missing new value")
    return errors
