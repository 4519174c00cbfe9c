from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from bpavalidator.analyze.compare import compare_runs
from bpavalidator.analyze.context import build_context
from bpavalidator.analyze.findings_builder import build_findings
from bpavalidator.analyze.normalizer import normalize_model
from bpavalidator.extract.snapshot_loader import load_findings, load_snapshot
from bpavalidator.logging_config import get_logger
from bpavalidator.report.render import render_audit_report
from bpavalidator.rules.registry import RuleRegistry

log = get_logger(__name__)


def run_pipeline(
    metadata_path: Path,
    out_dir: Path,
    rules_path: Optional[Path] = None,
    previous_path: Optional[Path] = None,
    max_workers: int = 1,
) -> Dict[str, Any]:
    out_dir.mkdir(parents=True, exist_ok=True)

    registry = RuleRegistry.from_file(rules_path) if rules_path else RuleRegistry.default()
    snapshot = load_snapshot(metadata_path)

    objects = normalize_model(snapshot)
    # context must be complete before the first rule runs
    context = build_context(objects)
    result = registry.run_all(objects, context, max_workers=max_workers)
    bundle = build_findings(result)
    bundle["model"] = context.model_name

    (out_dir / "findings.json").write_text(json.dumps(bundle, indent=2), encoding="utf-8")
    (out_dir / "summary.json").write_text(json.dumps(bundle["summary"], indent=2), encoding="utf-8")

    comparison = None
    if previous_path:
        comparison = compare_runs(result.findings, load_findings(previous_path)).to_dict()
        (out_dir / "comparison.json").write_text(json.dumps(comparison, indent=2), encoding="utf-8")
        log.info(
            "runs_compared",
            resolved=comparison["resolvedCount"],
            new=comparison["newCount"],
            recurring=comparison["recurringCount"],
        )

    render_audit_report(out_dir=out_dir, bundle=bundle, comparison=comparison)
    return {**bundle, "comparison": comparison}
