from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from bpavalidator.core.errors import CatalogError
from bpavalidator.core.findings import Severity
from bpavalidator.core.objects import PropertyBag


@dataclass(frozen=True)
class Rule:
    """
    One best-practice rule, in Tabular Editor BPA shape.

    Per-object rules hold a boolean `expression` that is true when an object
    violates the rule. Threshold rules instead carry a `threshold` and the
    name of a model-wide `aggregate`; they fire once, for the model, when the
    aggregate exceeds the threshold.
    """

    id: str
    name: str
    category: str
    severity: int
    description: str
    scope: str
    expression: str = ""
    fix_expression: Optional[str] = None
    compatibility_level: Optional[int] = None
    threshold: Optional[int] = None
    aggregate: Optional[str] = None

    @property
    def has_auto_fix(self) -> bool:
        return bool(self.fix_expression)

    @property
    def is_threshold_rule(self) -> bool:
        return self.threshold is not None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Rule":
        d = PropertyBag(raw)
        rule_id = d.get("ID") or d.get("Id")
        if not rule_id:
            raise CatalogError(f"rule without ID: {d.get('Name')!r}")
        try:
            severity = int(d.get("Severity") or Severity.WARNING)
            threshold = d.get("Threshold")
            level = d.get("CompatibilityLevel")
            return cls(
                id=str(rule_id),
                name=str(d.get("Name") or rule_id),
                category=str(d.get("Category") or "Uncategorized"),
                severity=severity,
                description=str(d.get("Description") or ""),
                scope=d.get("Scope") or "",
                expression=str(d.get("Expression") or ""),
                fix_expression=d.get("FixExpression") or None,
                compatibility_level=int(level) if level is not None else None,
                threshold=int(threshold) if threshold is not None else None,
                aggregate=d.get("Aggregate") or None,
            )
        except (TypeError, ValueError) as e:
            raise CatalogError(f"rule {rule_id!r} has a malformed field: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "ID": self.id,
            "Name": self.name,
            "Category": self.category,
            "Severity": self.severity,
            "Description": self.description,
            "Scope": self.scope,
            "Expression": self.expression,
        }
        if self.fix_expression:
            d["FixExpression"] = self.fix_expression
        if self.compatibility_level is not None:
            d["CompatibilityLevel"] = self.compatibility_level
        if self.threshold is not None:
            d["Threshold"] = self.threshold
            d["Aggregate"] = self.aggregate
        return d
