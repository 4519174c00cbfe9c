from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Tuple


class Severity(IntEnum):
    INFO = 1
    WARNING = 2
    ERROR = 3


FindingKey = Tuple[str, str]


@dataclass
class Finding:
    rule_id: str
    rule_name: str
    category: str
    severity: int
    description: str
    affected_object: str
    object_type: str
    has_auto_fix: bool = False

    @property
    def key(self) -> FindingKey:
        # (ruleId, affectedObject) is unique within one run
        return (self.rule_id, self.affected_object)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "category": self.category,
            "severity": self.severity,
            "description": self.description,
            "affectedObject": self.affected_object,
            "objectType": self.object_type,
            "hasAutoFix": self.has_auto_fix,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Finding":
        object_type = d.get("objectType") or "Unknown"
        return cls(
            rule_id=str(d.get("ruleId", "")),
            rule_name=str(d.get("ruleName", "")),
            category=str(d.get("category", "")),
            severity=int(d.get("severity") or Severity.INFO),
            description=str(d.get("description") or ""),
            affected_object=d.get("affectedObject") or f"Unknown_{object_type}",
            object_type=object_type,
            has_auto_fix=bool(d.get("hasAutoFix", False)),
        )
