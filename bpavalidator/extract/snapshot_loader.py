from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from bpavalidator.core.errors import SnapshotError
from bpavalidator.core.findings import Finding

SNAPSHOT_KINDS = ("model", "tables", "columns", "measures", "relationships")


def _read_json(fp: Path) -> Any:
    try:
        return json.loads(fp.read_text(encoding="utf-8-sig"))
    except OSError as e:
        raise SnapshotError(f"cannot read {fp}: {e}") from e
    except json.JSONDecodeError as e:
        raise SnapshotError(f"{fp} is not valid JSON: {e}") from e


def load_snapshot(path: Path) -> Dict[str, Any]:
    """
    Accepts either:
      - a single JSON file: {"model": {...}, "tables": [...], "columns": [...], ...}
      - a folder holding one file per kind: tables.json, columns.json, measures.json,
        relationships.json and optionally model.json
    """
    p = Path(path)

    if p.is_file():
        data = _read_json(p)
        if not isinstance(data, dict):
            raise SnapshotError(f"{p}: snapshot must be a JSON object")
        return data

    if p.is_dir():
        snapshot: Dict[str, Any] = {}
        for kind in SNAPSHOT_KINDS:
            fp = p / f"{kind}.json"
            if fp.exists():
                snapshot[kind] = _read_json(fp)
        if not any(k in snapshot for k in SNAPSHOT_KINDS[1:]):
            raise SnapshotError(f"{p}: no tables/columns/measures/relationships JSON files found")
        return snapshot

    raise SnapshotError(f"metadata path not found: {p}")


def load_findings(path: Path) -> List[Finding]:
    """Read findings written by a previous run (findings.json) or a bare list of findings."""
    data = _read_json(Path(path))
    records = data.get("findings") if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise SnapshotError(f"{path}: expected a list of findings")
    return [Finding.from_dict(r) for r in records]
