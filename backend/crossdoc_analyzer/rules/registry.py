"""
Typed rule registry.

Every rule is registered as a RuleDefinition tagged with its code, category
and default severity. The registry keeps registration order, which is also
the order issues are reported in, and supports filtering by category or
code without touching rule code.

Enabled/disabled status can be overridden from a YAML file:

    rules:
      IB_MECHANISM_INCOMPLETE:
        enabled: false
    categories:
      STUDY_FLOW:
        enabled: true
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import yaml

from crossdoc_analyzer.models.issues import Category, CrossDocIssue, Severity
from crossdoc_analyzer.rules.context import RuleContext

logger = logging.getLogger(__name__)

RuleFn = Callable[[RuleContext], List[CrossDocIssue]]


@dataclass(frozen=True)
class RuleDefinition:
    """A registered rule: identity tags plus its evaluate function."""
    code: str
    category: Category
    default_severity: Severity
    evaluate: RuleFn
    description: str = ""
    enabled: bool = True

    def to_dict(self) -> Dict:
        return {
            "code": self.code,
            "category": Category(self.category).value,
            "defaultSeverity": Severity(self.default_severity).value,
            "description": self.description,
            "enabled": self.enabled,
        }


class RuleRegistry:
    """Ordered collection of rule definitions keyed by code."""

    def __init__(self, rules: Optional[Iterable[RuleDefinition]] = None):
        self._rules: Dict[str, RuleDefinition] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: RuleDefinition) -> None:
        if rule.code in self._rules:
            raise ValueError(f"Rule already registered: {rule.code}")
        self._rules[rule.code] = rule

    def get(self, code: str) -> Optional[RuleDefinition]:
        return self._rules.get(code)

    def set_enabled(self, code: str, enabled: bool) -> None:
        rule = self._rules.get(code)
        if rule is None:
            raise KeyError(f"Unknown rule: {code}")
        self._rules[code] = replace(rule, enabled=enabled)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules.values())

    def codes(self) -> List[str]:
        return list(self._rules)

    def select(
        self,
        categories: Optional[Iterable[Union[Category, str]]] = None,
        codes: Optional[Iterable[str]] = None,
        include_disabled: bool = False,
    ) -> List[RuleDefinition]:
        """
        Rules matching the filters, in registration order.

        Args:
            categories: Keep only rules in these categories (None = all)
            codes: Keep only rules with these codes (None = all)
            include_disabled: Also return rules disabled by configuration
        """
        category_filter = {Category(c) for c in categories} if categories is not None else None
        code_filter = set(codes) if codes is not None else None

        selected = []
        for rule in self._rules.values():
            if not rule.enabled and not include_disabled:
                continue
            if category_filter is not None and rule.category not in category_filter:
                continue
            if code_filter is not None and rule.code not in code_filter:
                continue
            selected.append(rule)
        return selected

    def apply_config(self, config: Dict) -> None:
        """
        Apply enable/disable overrides.

        Category entries are applied first, then per-rule entries, so a rule
        entry wins over its category. Unknown codes are logged and ignored.
        """
        for category_name, entry in (config.get("categories") or {}).items():
            if not isinstance(entry, dict) or "enabled" not in entry:
                continue
            try:
                category = Category(category_name)
            except ValueError:
                logger.warning(f"Unknown rule category in config: {category_name}")
                continue
            for rule in list(self._rules.values()):
                if rule.category == category:
                    self.set_enabled(rule.code, bool(entry["enabled"]))

        for code, entry in (config.get("rules") or {}).items():
            if not isinstance(entry, dict) or "enabled" not in entry:
                continue
            if code not in self._rules:
                logger.warning(f"Unknown rule code in config: {code}")
                continue
            self.set_enabled(code, bool(entry["enabled"]))

        disabled = [rule.code for rule in self._rules.values() if not rule.enabled]
        if disabled:
            logger.info(f"Rules disabled by configuration: {disabled}")


def load_rule_config(path: Optional[Union[str, Path]]) -> Dict:
    """
    Load rule configuration from a YAML file.

    Returns:
        The "crossdoc" section of the file (or the whole file when that
        section is absent). Empty dict when the file does not exist.
    """
    if not path:
        return {}
    path = Path(path)
    if not path.exists():
        logger.warning(f"Rule config not found at {path}, using defaults")
        return {}

    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}
    return config.get("crossdoc", config)
