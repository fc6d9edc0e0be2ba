"""
Document bundle models for cross-document validation.

Each document type has its own immutable structured model. A CrossDocBundle
holds one optional slot per type, so rules must check presence before they
read any field:

    if bundle.protocol is None or bundle.sap is None:
        return []

Usage:
    from crossdoc_analyzer.models.bundle import CrossDocBundle

    bundle = CrossDocBundle.from_dict({
        "protocol": {"id": "prot-1", "endpoints": [...]},
        "sap": {"id": "sap-1", "primaryEndpoints": [...]},
    })
"""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class DocumentType(str, Enum):
    """Document types that take part in cross-document validation."""
    IB = "IB"
    PROTOCOL = "PROTOCOL"
    SAP = "SAP"
    ICF = "ICF"
    CSR = "CSR"


class EntityLevel(str, Enum):
    """Level of an objective or endpoint."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    EXPLORATORY = "exploratory"


class EndpointDataType(str, Enum):
    """Data type of a protocol endpoint (drives statistical test choice)."""
    CONTINUOUS = "continuous"
    BINARY = "binary"
    TIME_TO_EVENT = "time_to_event"
    ORDINAL = "ordinal"
    COUNT = "count"


# Bundle slot name for each document type
BUNDLE_SLOTS = {
    DocumentType.IB: "ib",
    DocumentType.PROTOCOL: "protocol",
    DocumentType.SAP: "sap",
    DocumentType.ICF: "icf",
    DocumentType.CSR: "csr",
}


# =============================================================================
# PARSING HELPERS
# =============================================================================


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key (accepts camelCase and snake_case)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _text(data: Dict[str, Any], *keys: str) -> str:
    value = _get(data, *keys, default="")
    return str(value).strip() if value is not None else ""


def _optional_text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    value = _get(data, *keys)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _sequence(data: Dict[str, Any], *keys: str) -> List[Any]:
    """Collection field as a list; anything but a list or tuple is dropped."""
    values = _get(data, *keys, default=[]) or []
    if not isinstance(values, (list, tuple)):
        logger.warning(f"Ignoring malformed field {keys[0]!r}: expected a list, got {type(values).__name__}")
        return []
    return list(values)


def _strings(data: Dict[str, Any], *keys: str) -> Tuple[str, ...]:
    values = _get(data, *keys)
    if isinstance(values, str):
        values = [values]
    else:
        values = _sequence(data, *keys)
    return tuple(str(v) for v in values if v is not None and str(v).strip())


def _items(data: Dict[str, Any], *keys: str) -> Iterable[Dict[str, Any]]:
    values = _sequence(data, *keys)
    return [v for v in values if isinstance(v, dict)]


def _level(value: Any) -> str:
    """Normalize objective/endpoint level; unknown values become exploratory."""
    text = str(value or "").strip().lower()
    if text in ("primary", "secondary", "exploratory"):
        return text
    if text == "tertiary":
        return EntityLevel.EXPLORATORY.value
    return EntityLevel.EXPLORATORY.value if text else ""


def _data_type(value: Any) -> Optional[str]:
    text = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not text:
        return None
    aliases = {"tte": "time_to_event", "time_to_event_endpoint": "time_to_event"}
    return aliases.get(text, text)


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# SHARED ENTITIES
# =============================================================================


@dataclass(frozen=True)
class Objective:
    """Study objective (IB or Protocol)."""
    id: str
    type: str
    description: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Objective":
        return cls(
            id=_text(data, "id"),
            type=_level(_get(data, "type", "level")),
            description=_text(data, "description", "text"),
        )


@dataclass(frozen=True)
class AnalysisPopulation:
    """Analysis population / analysis set (FAS, PPS, SAF...)."""
    id: str
    name: str
    abbreviation: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisPopulation":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            abbreviation=_text(data, "abbreviation", "abbr"),
            description=_text(data, "description"),
        )


# =============================================================================
# INVESTIGATOR'S BROCHURE
# =============================================================================


@dataclass(frozen=True)
class DosingInfo:
    """Dose regimen described in the IB."""
    id: str
    dose: str
    route: str = ""
    frequency: str = ""
    duration: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DosingInfo":
        return cls(
            id=_text(data, "id"),
            dose=_text(data, "dose"),
            route=_text(data, "route"),
            frequency=_text(data, "frequency"),
            duration=_optional_text(data, "duration"),
        )


@dataclass(frozen=True)
class IbDocument:
    """Structured Investigator's Brochure."""
    id: str
    version: Optional[str] = None
    objectives: Tuple[Objective, ...] = ()
    mechanism_of_action: Optional[str] = None
    target_population: Optional[str] = None
    key_risk_profile: Tuple[str, ...] = ()
    dosing_information: Tuple[DosingInfo, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IbDocument":
        return cls(
            id=_text(data, "id"),
            version=_optional_text(data, "version"),
            objectives=tuple(Objective.from_dict(o) for o in _items(data, "objectives")),
            mechanism_of_action=_optional_text(data, "mechanismOfAction", "mechanism_of_action"),
            target_population=_optional_text(data, "targetPopulation", "target_population"),
            key_risk_profile=_strings(data, "keyRiskProfile", "key_risk_profile"),
            dosing_information=tuple(
                DosingInfo.from_dict(d)
                for d in _items(data, "dosingInformation", "dosing_information")
            ),
        )


# =============================================================================
# PROTOCOL
# =============================================================================


@dataclass(frozen=True)
class ProtocolEndpoint:
    """Endpoint declared in the Protocol."""
    id: str
    type: str
    name: str
    description: str = ""
    data_type: Optional[str] = None
    variable: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolEndpoint":
        return cls(
            id=_text(data, "id"),
            type=_level(_get(data, "type", "level")),
            name=_text(data, "name"),
            description=_text(data, "description"),
            data_type=_data_type(_get(data, "dataType", "data_type")),
            variable=_optional_text(data, "variable"),
        )


@dataclass(frozen=True)
class TreatmentArm:
    """Protocol treatment arm with its dose regimen."""
    id: str
    name: str
    dose: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreatmentArm":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            dose=_optional_text(data, "dose"),
            route=_optional_text(data, "route"),
            frequency=_optional_text(data, "frequency"),
            description=_optional_text(data, "description"),
        )


@dataclass(frozen=True)
class Visit:
    """Protocol visit schedule entry."""
    id: str
    name: str
    day: Optional[int] = None
    week: Optional[int] = None
    procedures: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Visit":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            day=_int_or_none(_get(data, "day")),
            week=_int_or_none(_get(data, "week")),
            procedures=_strings(data, "procedures"),
        )


@dataclass(frozen=True)
class ProtocolDocument:
    """Structured clinical study Protocol."""
    id: str
    version: Optional[str] = None
    objectives: Tuple[Objective, ...] = ()
    endpoints: Tuple[ProtocolEndpoint, ...] = ()
    arms: Tuple[TreatmentArm, ...] = ()
    visit_schedule: Tuple[Visit, ...] = ()
    inclusion_criteria: Tuple[str, ...] = ()
    exclusion_criteria: Tuple[str, ...] = ()
    analysis_populations: Tuple[AnalysisPopulation, ...] = ()

    def endpoints_of_type(self, level: str) -> List[ProtocolEndpoint]:
        return [ep for ep in self.endpoints if ep.type == level]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolDocument":
        return cls(
            id=_text(data, "id"),
            version=_optional_text(data, "version"),
            objectives=tuple(Objective.from_dict(o) for o in _items(data, "objectives")),
            endpoints=tuple(ProtocolEndpoint.from_dict(e) for e in _items(data, "endpoints")),
            arms=tuple(TreatmentArm.from_dict(a) for a in _items(data, "arms")),
            visit_schedule=tuple(
                Visit.from_dict(v) for v in _items(data, "visitSchedule", "visit_schedule")
            ),
            inclusion_criteria=_strings(data, "inclusionCriteria", "inclusion_criteria"),
            exclusion_criteria=_strings(data, "exclusionCriteria", "exclusion_criteria"),
            analysis_populations=tuple(
                AnalysisPopulation.from_dict(p)
                for p in _items(data, "analysisPopulations", "analysis_populations")
            ),
        )


# =============================================================================
# STATISTICAL ANALYSIS PLAN
# =============================================================================


@dataclass(frozen=True)
class SapEndpoint:
    """Endpoint as analysed in the SAP."""
    id: str
    name: str
    description: str = ""
    variable: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SapEndpoint":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            description=_text(data, "description"),
            variable=_optional_text(data, "variable"),
        )


@dataclass(frozen=True)
class StatisticalTestSpec:
    """Statistical test declared for an endpoint."""
    endpoint_id: str
    test: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatisticalTestSpec":
        return cls(
            endpoint_id=_text(data, "endpointId", "endpoint_id"),
            test=_text(data, "test"),
            description=_optional_text(data, "description"),
        )


@dataclass(frozen=True)
class SapDocument:
    """Structured Statistical Analysis Plan."""
    id: str
    version: Optional[str] = None
    primary_endpoints: Tuple[SapEndpoint, ...] = ()
    secondary_endpoints: Tuple[SapEndpoint, ...] = ()
    statistical_tests: Tuple[StatisticalTestSpec, ...] = ()
    sample_size_driver_endpoint: Optional[str] = None
    analysis_populations: Tuple[AnalysisPopulation, ...] = ()
    missing_data_strategy: Optional[str] = None
    multiplicity_strategy: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SapDocument":
        return cls(
            id=_text(data, "id"),
            version=_optional_text(data, "version"),
            primary_endpoints=tuple(
                SapEndpoint.from_dict(e) for e in _items(data, "primaryEndpoints", "primary_endpoints")
            ),
            secondary_endpoints=tuple(
                SapEndpoint.from_dict(e) for e in _items(data, "secondaryEndpoints", "secondary_endpoints")
            ),
            statistical_tests=tuple(
                StatisticalTestSpec.from_dict(t) for t in _items(data, "statisticalTests", "statistical_tests")
            ),
            sample_size_driver_endpoint=_optional_text(
                data, "sampleSizeDriverEndpoint", "sample_size_driver_endpoint"
            ),
            analysis_populations=tuple(
                AnalysisPopulation.from_dict(p)
                for p in _items(data, "analysisPopulations", "analysis_populations")
            ),
            missing_data_strategy=_optional_text(data, "missingDataStrategy", "missing_data_strategy"),
            multiplicity_strategy=_optional_text(data, "multiplicityStrategy", "multiplicity_strategy"),
        )


# =============================================================================
# INFORMED CONSENT FORM
# =============================================================================


@dataclass(frozen=True)
class ProcedureDescription:
    """Procedure as explained to subjects in the ICF."""
    id: str
    name: str
    description: str = ""
    invasive: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcedureDescription":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            description=_text(data, "description"),
            invasive=bool(_get(data, "invasive", default=False)),
        )


@dataclass(frozen=True)
class IcfDocument:
    """Structured Informed Consent Form."""
    id: str
    version: Optional[str] = None
    procedure_descriptions: Tuple[ProcedureDescription, ...] = ()
    visit_burden: Optional[str] = None
    risks: Tuple[str, ...] = ()
    benefits: Tuple[str, ...] = ()
    treatment_descriptions: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IcfDocument":
        return cls(
            id=_text(data, "id"),
            version=_optional_text(data, "version"),
            procedure_descriptions=tuple(
                ProcedureDescription.from_dict(p)
                for p in _items(data, "procedureDescriptions", "procedure_descriptions")
            ),
            visit_burden=_optional_text(data, "visitBurden", "visit_burden"),
            risks=_strings(data, "risks"),
            benefits=_strings(data, "benefits"),
            treatment_descriptions=_strings(data, "treatmentDescriptions", "treatment_descriptions"),
        )


# =============================================================================
# CLINICAL STUDY REPORT
# =============================================================================


@dataclass(frozen=True)
class CsrEndpoint:
    """Endpoint result reported in the CSR."""
    id: str
    name: str
    result: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CsrEndpoint":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            result=_optional_text(data, "result"),
        )


@dataclass(frozen=True)
class CsrDocument:
    """Structured Clinical Study Report."""
    id: str
    version: Optional[str] = None
    actual_methods: Tuple[str, ...] = ()
    analysis_sets: Tuple[AnalysisPopulation, ...] = ()
    reported_primary_endpoints: Tuple[CsrEndpoint, ...] = ()
    reported_secondary_endpoints: Tuple[CsrEndpoint, ...] = ()
    deviations_overview: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CsrDocument":
        return cls(
            id=_text(data, "id"),
            version=_optional_text(data, "version"),
            actual_methods=_strings(data, "actualMethods", "actual_methods"),
            analysis_sets=tuple(
                AnalysisPopulation.from_dict(p) for p in _items(data, "analysisSets", "analysis_sets")
            ),
            reported_primary_endpoints=tuple(
                CsrEndpoint.from_dict(e)
                for e in _items(data, "reportedPrimaryEndpoints", "reported_primary_endpoints")
            ),
            reported_secondary_endpoints=tuple(
                CsrEndpoint.from_dict(e)
                for e in _items(data, "reportedSecondaryEndpoints", "reported_secondary_endpoints")
            ),
            deviations_overview=_strings(data, "deviationsOverview", "deviations_overview"),
        )


# =============================================================================
# STUDY FLOW
# =============================================================================


@dataclass(frozen=True)
class FlowVisit:
    """Visit in the study flow (schedule of activities)."""
    id: str
    name: str
    day: int = 0
    type: str = ""
    procedures: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowVisit":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            day=_int_or_none(_get(data, "day")) or 0,
            type=_text(data, "type").lower(),
            procedures=_strings(data, "procedures"),
        )


@dataclass(frozen=True)
class FlowProcedure:
    """Procedure in the study flow catalog."""
    id: str
    name: str
    category: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowProcedure":
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            category=_text(data, "category"),
        )


@dataclass(frozen=True)
class StudyFlow:
    """Visit/procedure model of the study, checked against the documents."""
    visits: Tuple[FlowVisit, ...] = ()
    procedures: Tuple[FlowProcedure, ...] = ()
    total_duration_days: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyFlow":
        return cls(
            visits=tuple(FlowVisit.from_dict(v) for v in _items(data, "visits")),
            procedures=tuple(FlowProcedure.from_dict(p) for p in _items(data, "procedures")),
            total_duration_days=_int_or_none(
                _get(data, "totalDuration", "totalDurationDays", "total_duration_days")
            ) or 0,
        )


# =============================================================================
# BUNDLE
# =============================================================================


@dataclass(frozen=True)
class CrossDocBundle:
    """
    The set of a project's currently available documents for one validation pass.

    Every slot is optional. An empty bundle is valid and yields no issues.
    """
    ib: Optional[IbDocument] = None
    protocol: Optional[ProtocolDocument] = None
    sap: Optional[SapDocument] = None
    icf: Optional[IcfDocument] = None
    csr: Optional[CsrDocument] = None
    study_flow: Optional[StudyFlow] = None

    _PARSERS = {
        "ib": IbDocument,
        "protocol": ProtocolDocument,
        "sap": SapDocument,
        "icf": IcfDocument,
        "csr": CsrDocument,
    }

    def get(self, document_type: DocumentType) -> Optional[Any]:
        """Return the document in the slot for a document type."""
        return getattr(self, BUNDLE_SLOTS[DocumentType(document_type)])

    def present_types(self) -> List[DocumentType]:
        """Document types present in the bundle, in canonical order."""
        return [doc_type for doc_type in DocumentType if self.get(doc_type) is not None]

    def is_empty(self) -> bool:
        return not self.present_types() and self.study_flow is None

    def document_id(self, document_type: DocumentType) -> Optional[str]:
        document = self.get(document_type)
        return document.id if document is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (snake_case) for JSON serialization."""
        return {
            slot: asdict(getattr(self, slot))
            for slot in ("ib", "protocol", "sap", "icf", "csr", "study_flow")
            if getattr(self, slot) is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CrossDocBundle":
        """
        Build a bundle from a plain dictionary.

        Keys may be slot names ("protocol") or document types ("PROTOCOL").
        Unknown keys are ignored.
        """
        data = data or {}
        slots: Dict[str, Any] = {}
        for key, value in data.items():
            if not isinstance(value, dict):
                continue
            slot = str(key).lower()
            if slot in cls._PARSERS:
                slots[slot] = cls._PARSERS[slot].from_dict(value)
            elif slot in ("study_flow", "studyflow"):
                slots["study_flow"] = StudyFlow.from_dict(value)
        return cls(**slots)
