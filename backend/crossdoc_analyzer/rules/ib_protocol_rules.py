"""
IB-Protocol rules: consistency between the Investigator's Brochure and the Protocol.
"""

from typing import List

from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity, Suggestion
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition

MECHANISM_MIN_LENGTH = 50
POPULATION_MIN_MATCH_RATIO = 0.3


def objective_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    """Primary objectives must align; aligned ones with weak wording get a warning."""
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []

    issues = []
    primary_links = [link for link in ctx.alignments.objectives if link.type == "primary"]
    aligned_primary = [link for link in primary_links if link.aligned]

    if primary_links and not aligned_primary:
        issues.append(CrossDocIssue(
            code="IB_PROTOCOL_OBJECTIVE_MISMATCH",
            severity=Severity.ERROR,
            category=Category.IB_PROTOCOL,
            message="Primary objective differs between IB and Protocol",
            details=(
                "The primary study objective described in the Investigator's Brochure does not "
                "match the primary objective stated in the Protocol. This inconsistency may cause "
                "confusion during study conduct and regulatory review."
            ),
            locations=[
                IssueLocation(DocumentType.IB, "OBJECTIVES"),
                IssueLocation(DocumentType.PROTOCOL, "OBJECTIVES"),
            ],
            suggestions=[
                Suggestion(
                    id="ALIGN_PRIMARY_OBJECTIVE",
                    label="Align Protocol primary objective with IB",
                    auto_fixable=False,
                ),
            ],
        ))

    for link in aligned_primary:
        if link.score < ctx.thresholds.low_similarity:
            issues.append(CrossDocIssue(
                code="IB_PROTOCOL_OBJECTIVE_LOW_SIMILARITY",
                severity=Severity.WARNING,
                category=Category.IB_PROTOCOL,
                message=f"Primary objective similarity is low ({link.score * 100:.0f}%)",
                details=(
                    "While the primary objectives are considered aligned, their wording differs "
                    "significantly. Consider using more consistent language."
                ),
                locations=[
                    IssueLocation(DocumentType.IB, "OBJECTIVES", link.left_id),
                    IssueLocation(DocumentType.PROTOCOL, "OBJECTIVES", link.right_id),
                ],
            ))

    return issues


def population_drift(ctx: RuleContext) -> List[CrossDocIssue]:
    """Key terms of the IB target population should appear in the Protocol criteria."""
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []

    population = bundle.ib.target_population
    criteria = " ".join(bundle.protocol.inclusion_criteria + bundle.protocol.exclusion_criteria)
    if not population or not criteria:
        return []

    ib_words = [word for word in population.lower().split() if len(word) > 3]
    if not ib_words:
        return []
    protocol_words = set(criteria.lower().split())

    matched = [word for word in ib_words if word in protocol_words]
    ratio = len(matched) / len(ib_words)
    if ratio >= POPULATION_MIN_MATCH_RATIO:
        return []

    return [CrossDocIssue(
        code="IB_PROTOCOL_POPULATION_DRIFT",
        severity=Severity.WARNING,
        category=Category.IB_PROTOCOL,
        message="Target population description differs significantly between IB and Protocol",
        details=(
            f"Only {ratio * 100:.0f}% of key terms from IB target population are found in "
            "Protocol inclusion/exclusion criteria. Ensure the study population is consistently defined."
        ),
        locations=[
            IssueLocation(DocumentType.IB, "TARGET_POPULATION"),
            IssueLocation(DocumentType.PROTOCOL, "ELIGIBILITY_CRITERIA"),
        ],
    )]


def dose_inconsistent(ctx: RuleContext) -> List[CrossDocIssue]:
    """
    IB doses must appear among Protocol arms and vice versa.

    Orphans are counted into one issue per direction rather than one issue
    per orphaned regimen.
    """
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []

    issues = []
    orphaned_doses = [link for link in ctx.alignments.doses if link.right_id is None]
    if orphaned_doses:
        issues.append(CrossDocIssue(
            code="IB_PROTOCOL_DOSE_INCONSISTENT",
            severity=Severity.ERROR,
            category=Category.IB_PROTOCOL,
            message=f"{len(orphaned_doses)} dose regimen(s) from IB not found in Protocol",
            details=(
                "Dosing information described in the Investigator's Brochure must be reflected in "
                "the Protocol treatment arms. Missing doses may indicate incomplete Protocol design."
            ),
            locations=[
                IssueLocation(DocumentType.IB, "DOSING"),
                IssueLocation(DocumentType.PROTOCOL, "TREATMENT_ARMS"),
            ],
            suggestions=[
                Suggestion(
                    id="ADD_MISSING_DOSES",
                    label="Add missing dose regimens to Protocol",
                    auto_fixable=False,
                ),
            ],
        ))

    matched_arm_ids = {link.right_id for link in ctx.alignments.doses if link.right_id}
    orphaned_arms = [arm for arm in bundle.protocol.arms if arm.id and arm.id not in matched_arm_ids]
    if bundle.ib.dosing_information and orphaned_arms:
        issues.append(CrossDocIssue(
            code="IB_PROTOCOL_DOSE_NOT_IN_IB",
            severity=Severity.WARNING,
            category=Category.IB_PROTOCOL,
            message=f"{len(orphaned_arms)} Protocol treatment arm(s) not described in IB",
            details=(
                "All treatment regimens used in the Protocol should be supported by information "
                "in the Investigator's Brochure."
            ),
            locations=[
                IssueLocation(DocumentType.PROTOCOL, "TREATMENT_ARMS"),
                IssueLocation(DocumentType.IB, "DOSING"),
            ],
        ))

    return issues


def mechanism_incomplete(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []

    mechanism = bundle.ib.mechanism_of_action
    if mechanism and len(mechanism) >= MECHANISM_MIN_LENGTH:
        return []

    return [CrossDocIssue(
        code="IB_MECHANISM_INCOMPLETE",
        severity=Severity.INFO,
        category=Category.IB_PROTOCOL,
        message="Mechanism of action not adequately described in IB",
        details=(
            "The Investigator's Brochure should contain a clear description of the drug's "
            "mechanism of action to support the Protocol rationale."
        ),
        locations=[IssueLocation(DocumentType.IB, "MECHANISM_OF_ACTION")],
    )]


def safety_profile_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []
    if bundle.ib.key_risk_profile:
        return []

    return [CrossDocIssue(
        code="IB_SAFETY_PROFILE_MISSING",
        severity=Severity.WARNING,
        category=Category.IB_PROTOCOL,
        message="Key risk profile not defined in IB",
        details=(
            "The Investigator's Brochure should clearly describe known and potential risks to "
            "support Protocol safety assessments and informed consent."
        ),
        locations=[IssueLocation(DocumentType.IB, "SAFETY")],
    )]


RULES = [
    RuleDefinition(
        code="IB_PROTOCOL_OBJECTIVE_MISMATCH",
        category=Category.IB_PROTOCOL,
        default_severity=Severity.ERROR,
        evaluate=objective_mismatch,
        description="Primary objective must align between IB and Protocol",
    ),
    RuleDefinition(
        code="IB_PROTOCOL_POPULATION_DRIFT",
        category=Category.IB_PROTOCOL,
        default_severity=Severity.WARNING,
        evaluate=population_drift,
        description="Target population must be consistent",
    ),
    RuleDefinition(
        code="IB_PROTOCOL_DOSE_INCONSISTENT",
        category=Category.IB_PROTOCOL,
        default_severity=Severity.ERROR,
        evaluate=dose_inconsistent,
        description="Dosing information must be consistent",
    ),
    RuleDefinition(
        code="IB_MECHANISM_INCOMPLETE",
        category=Category.IB_PROTOCOL,
        default_severity=Severity.INFO,
        evaluate=mechanism_incomplete,
        description="Mechanism of action should be described",
    ),
    RuleDefinition(
        code="IB_SAFETY_PROFILE_MISSING",
        category=Category.IB_PROTOCOL,
        default_severity=Severity.WARNING,
        evaluate=safety_profile_missing,
        description="IB must define a key risk profile",
    ),
]
