from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from bpavalidator.analyze.context import AnalysisContext, build_context
from bpavalidator.analyze.scope import resolve_scope
from bpavalidator.core.findings import Finding, FindingKey
from bpavalidator.core.objects import ModelObject, ObjectType
from bpavalidator.expr.evaluator import evaluate
from bpavalidator.logging_config import get_logger
from bpavalidator.rules.base import Rule

log = get_logger(__name__)


@dataclass
class EvaluationResult:
    findings: List[Finding] = field(default_factory=list)
    skipped_rules: List[str] = field(default_factory=list)
    rules_evaluated: int = 0


def _finding(rule: Rule, affected_object: str, object_type: str) -> Finding:
    return Finding(
        rule_id=rule.id,
        rule_name=rule.name,
        category=rule.category,
        severity=int(rule.severity),
        description=rule.description,
        affected_object=affected_object or f"Unknown_{object_type}",
        object_type=object_type,
        has_auto_fix=rule.has_auto_fix,
    )


def _threshold_candidates(rule: Rule, context: AnalysisContext) -> List[Finding]:
    if rule.aggregate not in context.aggregates:
        raise KeyError(f"unknown aggregate {rule.aggregate!r}")
    count = context.aggregates[rule.aggregate]
    if count > rule.threshold:
        log.debug("threshold_exceeded", rule_id=rule.id, aggregate=rule.aggregate, count=count)
        return [_finding(rule, context.model_name, ObjectType.MODEL.value)]
    return []


def _rule_candidates(rule: Rule, objects: Sequence[ModelObject], context: AnalysisContext) -> List[Finding]:
    """Findings for one rule. Raises only for rule-level faults."""
    if rule.is_threshold_rule:
        return _threshold_candidates(rule, context)

    out: List[Finding] = []
    for obj in resolve_scope(rule.scope, objects):
        try:
            if evaluate(rule.expression, obj, context):
                out.append(_finding(rule, obj.name, obj.type))
        except Exception as e:
            log.debug("object_skipped", rule_id=rule.id, object=getattr(obj, "name", None), error=repr(e))
    return out


def _safe_candidates(rule: Rule, objects: Sequence[ModelObject], context: AnalysisContext) -> Optional[List[Finding]]:
    try:
        return _rule_candidates(rule, objects, context)
    except Exception as e:
        log.warning("rule_skipped", rule_id=getattr(rule, "id", None), error=repr(e))
        return None


def evaluate_rules(
    rules: Sequence[Rule],
    objects: Sequence[ModelObject],
    context: Optional[AnalysisContext] = None,
    max_workers: int = 1,
) -> EvaluationResult:
    """
    Apply every rule to every object in its scope.

    The context must describe the same object list; it is built here when not
    given. Findings come out in rule order and are unique per
    (rule id, affected object). A rule that fails as a whole is recorded in
    `skipped_rules`; it never aborts the run.
    """
    if context is None:
        context = build_context(objects)

    log.info("evaluation_started", rules=len(rules), objects=len(objects), workers=max_workers)

    if max_workers > 1 and len(rules) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            per_rule = list(pool.map(lambda r: _safe_candidates(r, objects, context), rules))
    else:
        per_rule = [_safe_candidates(r, objects, context) for r in rules]

    # merged post-hoc so the dedup set is never shared between workers
    result = EvaluationResult()
    seen: Set[FindingKey] = set()
    for rule, candidates in zip(rules, per_rule):
        if candidates is None:
            result.skipped_rules.append(getattr(rule, "id", "?"))
            continue
        result.rules_evaluated += 1
        for f in candidates:
            if f.key in seen:
                continue
            seen.add(f.key)
            result.findings.append(f)

    log.info(
        "evaluation_completed",
        findings=len(result.findings),
        rules_evaluated=result.rules_evaluated,
        rules_skipped=len(result.skipped_rules),
    )
    return result


def evaluate_all(
    rules: Sequence[Rule],
    objects: Sequence[ModelObject],
    context: Optional[AnalysisContext] = None,
    max_workers: int = 1,
) -> List[Finding]:
    return evaluate_rules(rules, objects, context, max_workers=max_workers).findings
