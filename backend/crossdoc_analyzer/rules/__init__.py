"""
Cross-document rules.

Rules are grouped by the document pair they check. Each rule module exposes
a RULES list of RuleDefinition entries; default_registry() combines them in
a fixed order:

    IB_PROTOCOL -> PROTOCOL_SAP -> PROTOCOL_ICF -> PROTOCOL_CSR -> GLOBAL -> STUDY_FLOW

Usage:
    from crossdoc_analyzer.rules import build_rule_context, default_registry

    registry = default_registry()
    registry.apply_config(load_rule_config("config.yaml"))
"""

from typing import Dict, Optional

from .context import RuleContext, build_alignments, build_rule_context
from .registry import RuleDefinition, RuleRegistry, load_rule_config
from . import (
    global_rules,
    ib_protocol_rules,
    protocol_csr_rules,
    protocol_icf_rules,
    protocol_sap_rules,
    studyflow_rules,
)

RULE_MODULES = [
    ib_protocol_rules,
    protocol_sap_rules,
    protocol_icf_rules,
    protocol_csr_rules,
    global_rules,
    studyflow_rules,
]


def default_registry(config: Optional[Dict] = None) -> RuleRegistry:
    """A fresh registry holding every built-in rule, optionally with enablement overrides."""
    registry = RuleRegistry()
    for module in RULE_MODULES:
        for rule in module.RULES:
            registry.register(rule)
    if config:
        registry.apply_config(config)
    return registry


__all__ = [
    "RuleContext",
    "RuleDefinition",
    "RuleRegistry",
    "build_alignments",
    "build_rule_context",
    "default_registry",
    "load_rule_config",
]
