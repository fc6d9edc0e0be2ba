"""
Cross-document issue models.

Issues are produced by rules, returned to the caller and discarded by the
engine. Each issue carries ordered locations and optional fix suggestions;
a suggestion is auto-fixable only when it holds deterministic patches.

Issue ids are derived from the code and locations, so the same finding gets
the same id across validation runs.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from crossdoc_analyzer.models.bundle import DocumentType


class Severity(str, Enum):
    """Issue severity, most severe first."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Category(str, Enum):
    """Document pair (or cross-cutting scope) a rule checks."""
    IB_PROTOCOL = "IB_PROTOCOL"
    PROTOCOL_ICF = "PROTOCOL_ICF"
    PROTOCOL_SAP = "PROTOCOL_SAP"
    PROTOCOL_CSR = "PROTOCOL_CSR"
    SAP_CSR = "SAP_CSR"
    GLOBAL = "GLOBAL"
    STUDY_FLOW = "STUDY_FLOW"


SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.ERROR: 1,
    Severity.WARNING: 2,
    Severity.INFO: 3,
}


@dataclass(frozen=True)
class IssueLocation:
    """Where an issue applies: a document section and optionally a block."""
    document_type: DocumentType
    section_id: str
    block_id: Optional[str] = None

    def key(self) -> str:
        return f"{DocumentType(self.document_type).value}:{self.section_id}:{self.block_id or ''}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "documentType": DocumentType(self.document_type).value,
            "sectionId": self.section_id,
        }
        if self.block_id:
            result["blockId"] = self.block_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueLocation":
        return cls(
            document_type=DocumentType(data.get("documentType", data.get("document_type"))),
            section_id=data.get("sectionId", data.get("section_id", "")),
            block_id=data.get("blockId", data.get("block_id")),
        )


@dataclass(frozen=True)
class Patch:
    """A single block-level edit to one document."""
    document_type: DocumentType
    document_id: str
    new_value: str
    block_id: Optional[str] = None
    field: Optional[str] = None
    old_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentType": DocumentType(self.document_type).value,
            "documentId": self.document_id,
            "blockId": self.block_id,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patch":
        return cls(
            document_type=DocumentType(data.get("documentType", data.get("document_type"))),
            document_id=data.get("documentId", data.get("document_id", "")),
            new_value=data.get("newValue", data.get("new_value", "")),
            block_id=data.get("blockId", data.get("block_id")),
            field=data.get("field"),
            old_value=data.get("oldValue", data.get("old_value")),
        )


@dataclass(frozen=True)
class Suggestion:
    """A proposed resolution; auto-fixable suggestions carry patches."""
    id: str
    label: str
    auto_fixable: bool = False
    patches: List[Patch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "autoFixable": self.auto_fixable,
            "patches": [p.to_dict() for p in self.patches],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        return cls(
            id=data.get("id", ""),
            label=data.get("label", ""),
            auto_fixable=bool(data.get("autoFixable", data.get("auto_fixable", False))),
            patches=[Patch.from_dict(p) for p in data.get("patches", [])],
        )


def make_issue_id(code: str, locations: List[IssueLocation]) -> str:
    """Stable issue id from the rule code and the issue locations."""
    raw = code + "|" + "|".join(loc.key() for loc in locations)
    return "XDOC-" + hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]


@dataclass
class CrossDocIssue:
    """A structured inconsistency finding."""
    code: str
    severity: Severity
    category: Category
    message: str
    locations: List[IssueLocation] = field(default_factory=list)
    details: Optional[str] = None
    suggestions: List[Suggestion] = field(default_factory=list)
    id: str = ""

    def __post_init__(self):
        self.severity = Severity(self.severity)
        self.category = Category(self.category)
        if not self.id:
            self.id = make_issue_id(self.code, self.locations)

    @property
    def auto_fixable(self) -> bool:
        return any(s.auto_fixable for s in self.suggestions)

    def auto_fix_suggestion(self) -> Optional[Suggestion]:
        """First auto-fixable suggestion, if any."""
        for suggestion in self.suggestions:
            if suggestion.auto_fixable:
                return suggestion
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format (camelCase)."""
        result = {
            "id": self.id,
            "code": self.code,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "locations": [loc.to_dict() for loc in self.locations],
            "autoFixable": self.auto_fixable,
        }
        if self.details:
            result["details"] = self.details
        if self.suggestions:
            result["suggestions"] = [s.to_dict() for s in self.suggestions]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrossDocIssue":
        return cls(
            id=data.get("id", ""),
            code=data["code"],
            severity=Severity(data["severity"]),
            category=Category(data["category"]),
            message=data.get("message", ""),
            details=data.get("details"),
            locations=[IssueLocation.from_dict(loc) for loc in data.get("locations", [])],
            suggestions=[Suggestion.from_dict(s) for s in data.get("suggestions", [])],
        )
