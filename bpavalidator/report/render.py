from __future__ import annotations

from itertools import groupby
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

SEVERITY_LABELS = {3: "Error", 2: "Warning", 1: "Info"}


def _severity_label(value: Any) -> str:
    return SEVERITY_LABELS.get(int(value or 0), "Unknown")


def render_audit_report(out_dir: Path, bundle: Dict[str, Any], comparison: Optional[Dict[str, Any]] = None) -> Path:
    templates_dir = Path(__file__).parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "j2"]),
    )
    env.filters["severity_label"] = _severity_label

    findings = sorted(bundle.get("findings") or [], key=lambda f: f.get("category") or "")
    by_category = [(cat, list(items)) for cat, items in groupby(findings, key=lambda f: f.get("category") or "")]

    template = env.get_template("audit_report.html.j2")
    html = template.render(
        model=bundle.get("model", "Model"),
        summary=bundle.get("summary") or {},
        by_category=by_category,
        comparison=comparison,
    )

    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / "report.html"
    out.write_text(html, encoding="utf-8")
    return out
