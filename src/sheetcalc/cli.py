"""Command-line interface for sheetcalc."""

from __future__ import annotations

import json
import math
from pathlib import Path

import click

from sheetcalc import __version__
from sheetcalc.formulas.errors import FormulaError
from sheetcalc.formulas.evaluator import MAX_NESTING_DEPTH


def _json_number(value: float) -> float | str:
    """JSON-safe rendering of a result (``inf`` becomes ``"Infinity"``)."""
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


@click.group()
@click.version_option(version=__version__, prog_name="sheetcalc")
def main() -> None:
    """sheetcalc -- evaluate spreadsheet formulas and sheets."""


# ---------------------------------------------------------------------------
# Eval / tokens
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("text")
@click.option(
    "--max-depth",
    type=click.IntRange(min=1, max=MAX_NESTING_DEPTH),
    default=None,
    help="Parenthesis nesting limit.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(text: str, max_depth: int | None, as_json: bool) -> None:
    """Evaluate formula TEXT against an empty sheet."""
    from sheetcalc.cells import SheetMemory
    from sheetcalc.formulas.evaluator import DEFAULT_MAX_DEPTH, evaluate_formula
    from sheetcalc.formulas.tokenizer import tokenize
    from sheetcalc.sheet import format_value

    try:
        tokens = tokenize(text)
    except FormulaError as e:
        raise click.ClickException(str(e))

    outcome = evaluate_formula(
        tokens, SheetMemory(), max_depth=max_depth or DEFAULT_MAX_DEPTH
    )
    if as_json:
        click.echo(json.dumps({
            "tokens": tokens,
            "result": _json_number(outcome.result),
            "error": outcome.error,
        }, indent=2))
        return

    click.echo(format_value(outcome.result))
    if not outcome.ok:
        click.echo(f"error: {outcome.error}")


@main.command()
@click.argument("text")
def tokens(text: str) -> None:
    """Print the tokens of formula TEXT, one per line."""
    from sheetcalc.formulas.tokenizer import tokenize

    try:
        for token in tokenize(text):
            click.echo(token)
    except FormulaError as e:
        raise click.ClickException(str(e))


# ---------------------------------------------------------------------------
# Sheet
# ---------------------------------------------------------------------------


@main.command()
@click.argument("sheet_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project", "directory", default=None, type=click.Path(exists=True, file_okay=False), help="Project directory for config and logs.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def sheet(sheet_file: str, directory: str | None, as_json: bool) -> None:
    """Load and evaluate the YAML sheet in SHEET_FILE."""
    from sheetcalc.formulas.tokenizer import format_formula
    from sheetcalc.logging.events import clear_project_dir, set_project_dir
    from sheetcalc.project import load_project_config
    from sheetcalc.sheet import load_sheet

    try:
        config: dict = {}
        if directory:
            config = load_project_config(Path(directory))
            set_project_dir(Path(directory))
        try:
            loaded = load_sheet(Path(sheet_file), config)
        finally:
            clear_project_dir()
    except FormulaError as e:
        raise click.ClickException(str(e))

    if as_json:
        out = [
            {
                "label": label,
                "formula": format_formula(loaded.get_formula(label)),
                "value": _json_number(loaded.get_value(label)),
                "error": loaded.get_error(label),
                "display": loaded.display(label),
            }
            for label in loaded.labels()
        ]
        click.echo(json.dumps({"sheet": loaded.name, "cells": out}, indent=2))
        return

    click.echo(f"Sheet: {loaded.name}")
    for label in loaded.labels():
        source = loaded.get_source(label)
        click.echo(f"  {label:6s} {source:30s} {loaded.display(label)}")


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--sheet", "sheet_name", default=None, help="Filter by sheet name.")
@click.option("--limit", default=50, type=click.IntRange(min=1), help="Maximum events to show.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def logs(
    directory: str,
    level: str | None,
    event_type: str | None,
    sheet_name: str | None,
    limit: int,
    as_json: bool,
) -> None:
    """Show recent events logged in project DIRECTORY, newest first."""
    from sheetcalc.logging.sink import EventSink

    events = EventSink(Path(directory)).read_global(
        level=level, event_type=event_type, sheet=sheet_name, limit=limit
    )
    if as_json:
        click.echo(json.dumps(events, indent=2, default=str))
        return
    if not events:
        click.echo("No events found.")
        return
    for e in events:
        click.echo(f"{e.get('ts', '')}  {e.get('level', ''):7s}  {e.get('event_type', ''):16s}  {e.get('message', '')}")


if __name__ == "__main__":
    main()
