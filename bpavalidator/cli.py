from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from bpavalidator.analyze.compare import compare_runs
from bpavalidator.config import get_settings
from bpavalidator.core.errors import ValidatorError
from bpavalidator.extract.snapshot_loader import load_findings
from bpavalidator.logging_config import configure_logging
from bpavalidator.pipeline import run_pipeline
from bpavalidator.rules.registry import RuleRegistry

app = typer.Typer(add_completion=False, help="Best Practice Analyzer for tabular semantic models.")


@app.callback()
def _setup(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="console or json"),
):
    # load .env into environment for THIS process, before settings are read
    load_dotenv(override=False)
    get_settings.cache_clear()
    try:
        configure_logging(level=log_level, fmt=log_format)
    except ValidatorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def run(
    metadata: Path = typer.Option(..., "--metadata", "-m", exists=True, help="Metadata snapshot JSON file or folder"),
    rules: Optional[Path] = typer.Option(None, "--rules", "-r", exists=True, dir_okay=False, help="BPA rule catalog JSON"),
    out: Path = typer.Option(Path("output"), "--out", "-o", help="Output directory"),
    previous: Optional[Path] = typer.Option(None, "--previous", "-p", exists=True, dir_okay=False, help="findings.json of an earlier run"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Evaluate rules on this many threads"),
):
    """
    Evaluate the rule catalog against a model snapshot and write:
      - <out>/<model>_<timestamp>/findings.json
      - <out>/<model>_<timestamp>/summary.json
      - (with --previous) comparison.json
      - report.html
    """
    settings = get_settings()
    name = metadata.stem if metadata.is_file() else metadata.name
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = out / f"{name}_{ts}"

    try:
        bundle = run_pipeline(
            metadata_path=metadata,
            out_dir=run_dir,
            rules_path=rules or settings.rules_path,
            previous_path=previous,
            max_workers=workers or settings.max_workers,
        )
    except ValidatorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    s = bundle["summary"]
    typer.echo(
        f"{s['totalCount']} findings ({s['errorCount']} errors, {s['warningCount']} warnings, "
        f"{s['infoCount']} info); {s['rulesSkipped']} rules skipped"
    )
    typer.echo(f"Report generated: {run_dir / 'report.html'}")


@app.command()
def compare(
    current: Path = typer.Argument(..., exists=True, dir_okay=False, help="findings.json of the newer run"),
    previous: Path = typer.Argument(..., exists=True, dir_okay=False, help="findings.json of the older run"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the comparison JSON here"),
):
    """Show which findings were resolved, are new, or recur between two runs."""
    try:
        comparison = compare_runs(load_findings(current), load_findings(previous))
    except ValidatorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"resolved: {comparison.resolved_count}  new: {comparison.new_count}  recurring: {comparison.recurring_count}"
    )
    for f in comparison.new:
        typer.echo(f"  + {f.rule_id}  {f.affected_object}")
    for f in comparison.resolved:
        typer.echo(f"  - {f.rule_id}  {f.affected_object}")
    if out:
        out.write_text(json.dumps(comparison.to_dict(), indent=2), encoding="utf-8")


@app.command("rules")
def list_rules(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only rules in this category"),
    rules: Optional[Path] = typer.Option(None, "--rules", "-r", exists=True, dir_okay=False, help="BPA rule catalog JSON"),
):
    """List the rules in the catalog."""
    try:
        registry = RuleRegistry.from_file(rules or get_settings().rules_path).filter(category)
    except ValidatorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    for r in registry:
        fix = " [auto-fix]" if r.has_auto_fix else ""
        typer.echo(f"{r.severity}  {r.id}  ({r.scope}){fix}")
    typer.echo(f"{len(registry)} rules")


def main():
    app()


if __name__ == "__main__":
    main()
