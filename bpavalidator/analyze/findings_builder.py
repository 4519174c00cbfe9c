from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Sequence

from bpavalidator.core.findings import Finding, Severity
from bpavalidator.rules.engine import EvaluationResult


def summarize(findings: Sequence[Finding]) -> Dict[str, Any]:
    severities = Counter(int(f.severity) for f in findings)
    return {
        "totalCount": len(findings),
        "errorCount": severities.get(Severity.ERROR, 0),
        "warningCount": severities.get(Severity.WARNING, 0),
        "infoCount": severities.get(Severity.INFO, 0),
        "autoFixableCount": sum(1 for f in findings if f.has_auto_fix),
        "byCategory": dict(sorted(Counter(f.category for f in findings).items())),
        "byObjectType": dict(sorted(Counter(f.object_type for f in findings).items())),
    }


def build_findings(result: EvaluationResult) -> Dict[str, Any]:
    """Findings plus run bookkeeping, in the shape written to findings.json."""
    ordered = sorted(result.findings, key=lambda f: (-int(f.severity), f.category, f.rule_id, f.affected_object))
    return {
        "summary": {
            **summarize(result.findings),
            "rulesEvaluated": result.rules_evaluated,
            "rulesSkipped": len(result.skipped_rules),
            "skippedRules": list(result.skipped_rules),
        },
        "findings": [f.to_dict() for f in ordered],
    }
