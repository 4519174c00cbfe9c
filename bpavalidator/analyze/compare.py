from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from bpavalidator.core.findings import Finding


@dataclass
class RunComparison:
    resolved: List[Finding] = field(default_factory=list)
    new: List[Finding] = field(default_factory=list)
    recurring: List[Finding] = field(default_factory=list)

    @property
    def resolved_count(self) -> int:
        return len(self.resolved)

    @property
    def new_count(self) -> int:
        return len(self.new)

    @property
    def recurring_count(self) -> int:
        return len(self.recurring)

    def to_dict(self) -> Dict[str, Any]:
        def brief(items: List[Finding]) -> List[Dict[str, Any]]:
            return [
                {"ruleId": f.rule_id, "ruleName": f.rule_name, "affectedObject": f.affected_object}
                for f in items
            ]

        return {
            "resolvedCount": self.resolved_count,
            "newCount": self.new_count,
            "recurringCount": self.recurring_count,
            "resolved": brief(self.resolved),
            "new": brief(self.new),
            "recurring": brief(self.recurring),
        }


def compare_runs(current: Sequence[Finding], previous: Sequence[Finding]) -> RunComparison:
    """Partition two runs' findings by (rule id, affected object)."""
    current_keys = {f.key for f in current}
    previous_keys = {f.key for f in previous}
    return RunComparison(
        resolved=[f for f in previous if f.key not in current_keys],
        new=[f for f in current if f.key not in previous_keys],
        recurring=[f for f in current if f.key in previous_keys],
    )


def recheck_finding(finding: Finding, current: Sequence[Finding]) -> bool:
    """True when `finding` no longer shows up in a fresh run, i.e. it is fixed."""
    return all(f.key != finding.key for f in current)
