"""CLI interface for building, running and evaluating experiments."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import typer

from envsets.container import environment_table, generate_environments
from envsets.errors import HarnessError
from harness import layout
from harness.layout import find_marker_pwd
from harness.skeleton import create_source_directory

from experiments.config import HarnessConfig, resolve_config
from experiments.logs import configure_logging
from experiments.report import format_table
from experiments.runner import ExperimentRunner
from experiments.table import ResultAggregator

app = typer.Typer(help="Tools for running experiments", no_args_is_help=True)


_VALUE_SEPARATOR = re.compile(r"(?<!\\),")


def parse_edit_request(items: list[str] | None) -> dict[str, list[str]]:
    """Turn `NAME=V1,V2` arguments into {"NAME": ["V1", "V2"]}.

    `NAME` without `=` yields an empty value list. Repeated names are merged.
    `\\,` inside a value is a literal comma.
    """
    request: dict[str, list[str]] = {}
    for item in items or []:
        name, sep, values = item.partition("=")
        vals = (
            [v.replace("\\,", ",") for v in _VALUE_SEPARATOR.split(values)] if sep else []
        )
        request.setdefault(name.strip(), []).extend(vals)
    return request


def _fail(message: str) -> None:
    typer.secho(f"❌ {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def _state(ctx: typer.Context) -> tuple[HarnessConfig, logging.Logger]:
    return ctx.obj["config"], ctx.obj["logger"]


@app.callback()
def main(
    ctx: typer.Context,
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to harness YAML config"),
) -> None:
    """Tools for running experiments."""
    try:
        config = resolve_config(config_path)
    except FileNotFoundError as e:
        _fail(f"Config file not found: {e}")
    except ValueError as e:
        _fail(f"Invalid config: {e}")

    level = logging.ERROR if quiet else max(
        logging.DEBUG, logging.getLevelName(config.log_level) - 10 * verbose
    )
    ctx.obj = {"config": config, "logger": configure_logging(level)}


@app.command()
def skeleton(
    ctx: typer.Context,
    experiment: Path = typer.Argument(..., help="Experiment source directory to create"),
) -> None:
    """Initialize a new experiment source directory with template/run.sh and envs/0.env."""
    config, logger = _state(ctx)
    try:
        create_source_directory(experiment, template_dir=config.template_dir, logger=logger)
    except HarnessError as e:
        _fail(str(e))

    typer.echo("\nnext steps:")
    typer.echo("1. add variables with:")
    typer.echo("   exomat env --add COUNT=1,2,3")
    typer.echo(f"2. adjust script in {layout.SRC_TEMPLATE_DIR}/{layout.SRC_RUN_FILE}")
    typer.echo("3. execute experiment with:")
    typer.echo(f"   exomat run {experiment}")


@app.command()
def env(
    ctx: typer.Context,
    add: Optional[list[str]] = typer.Option(
        None,
        "--add",
        "-a",
        help="NAME=V1,V2: add a new variable, combined with every environment (\\, is a literal comma)",
    ),
    append: Optional[list[str]] = typer.Option(
        None, "--append", "-A", help="NAME=V1,V2: add values to an existing variable"
    ),
    remove: Optional[list[str]] = typer.Option(
        None, "--remove", "-r", help="NAME=V1,V2 removes values, NAME removes the variable"
    ),
) -> None:
    """Edit the environment combinations of the enclosing experiment source.

    Prints all environments as a table if no modifications are given.
    """
    _, logger = _state(ctx)
    try:
        env_dir = find_marker_pwd(layout.MARKER_SRC) / layout.SRC_ENV_DIR

        if not (add or append or remove):
            header, rows = environment_table(env_dir)
            logger.info("%d env files found", len(rows))
            typer.echo(format_table(header, rows))
            return

        generate_environments(
            env_dir,
            to_add=parse_edit_request(add),
            to_append=parse_edit_request(append),
            to_remove=parse_edit_request(remove),
            logger=logger,
        )
    except HarnessError as e:
        _fail(str(e))


@app.command()
def run(
    ctx: typer.Context,
    experiment: Path = typer.Argument(..., help="Path to the experiment source directory"),
    trial: bool = typer.Option(
        False, "--trial", "-t", help="Run one combination once in a temporary directory and report"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Series directory instead of [experiment]-YYYY-MM-DD-HH-MM-SS"
    ),
    repetitions: Optional[int] = typer.Option(
        None, "--repetitions", "-r", min=1, help="Number of runs per environment"
    ),
) -> None:
    """Execute an experiment from an experiment source directory."""
    config, logger = _state(ctx)
    runner = ExperimentRunner(config, logger=logger)

    try:
        if trial:
            outcome = runner.trial(experiment)
            typer.echo(outcome.report, nl=False)
            if not outcome.success:
                raise typer.Exit(1)
            return

        series = runner.run(experiment, repetitions=repetitions, output=output)
    except HarnessError as e:
        _fail(str(e))

    typer.secho(f"✅ Experiment series written to {series.series_dir}", fg=typer.colors.GREEN)


@app.command("make-table")
def make_table(ctx: typer.Context) -> None:
    """Collect the out_* files of every run of the enclosing series into one CSV file."""
    config, logger = _state(ctx)
    try:
        series_dir = find_marker_pwd(layout.MARKER_SERIES)
        csv_path = ResultAggregator(series_dir, na_value=config.na_value, logger=logger).make_table()
    except HarnessError as e:
        _fail(str(e))

    typer.secho(f"✅ Table written to {csv_path}", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
