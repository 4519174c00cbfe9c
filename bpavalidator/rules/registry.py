from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from bpavalidator.analyze.context import AnalysisContext
from bpavalidator.config import DEFAULT_RULES_PATH
from bpavalidator.core.errors import CatalogError
from bpavalidator.core.objects import ModelObject
from bpavalidator.logging_config import get_logger
from bpavalidator.rules.base import Rule
from bpavalidator.rules.engine import EvaluationResult, evaluate_rules
from bpavalidator.rules.model.md001_calculated_columns import MD001
from bpavalidator.rules.model.md002_bidirectional import MD002

log = get_logger(__name__)

BUILTIN_RULES = (MD001, MD002)


def _rule_records(data: Any) -> List[dict]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        records = data.get("Rules", data.get("rules"))
        if isinstance(records, list):
            return records
    raise CatalogError("rule catalog must be a list of rules or an object with a 'Rules' list")


class RuleRegistry:
    """Immutable rule catalog. Built by the caller and handed to the evaluator."""

    def __init__(self, rules: Sequence[Rule]):
        ids = [r.id for r in rules]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise CatalogError(f"duplicate rule ids: {', '.join(dupes)}")
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple:
        return self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @staticmethod
    def from_file(path: Path, include_builtin: bool = True) -> "RuleRegistry":
        path = Path(path)
        log.info("loading_rule_catalog", path=str(path))
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except OSError as e:
            raise CatalogError(f"cannot read rule catalog {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise CatalogError(f"rule catalog {path} is not valid JSON: {e}") from e

        rules = [Rule.from_dict(r) for r in _rule_records(data)]
        if include_builtin:
            known = {r.id for r in rules}
            rules.extend(r for r in BUILTIN_RULES if r.id not in known)
        log.info("rule_catalog_loaded", count=len(rules))
        return RuleRegistry(rules)

    @staticmethod
    def default() -> "RuleRegistry":
        return RuleRegistry.from_file(DEFAULT_RULES_PATH)

    def get(self, rule_id: str) -> Optional[Rule]:
        return next((r for r in self._rules if r.id == rule_id), None)

    def by_name(self, name: str) -> Optional[Rule]:
        return next((r for r in self._rules if r.name == name), None)

    def categories(self) -> List[str]:
        return sorted({r.category for r in self._rules})

    def filter(self, category: Optional[str] = None) -> "RuleRegistry":
        if not category:
            return self
        return RuleRegistry([r for r in self._rules if r.category == category])

    def run_all(
        self,
        objects: Sequence[ModelObject],
        context: Optional[AnalysisContext] = None,
        max_workers: int = 1,
    ) -> EvaluationResult:
        return evaluate_rules(self._rules, objects, context, max_workers=max_workers)
