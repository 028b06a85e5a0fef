"""Result table generator for experiment series."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from envsets.environment import Environment
from envsets.errors import EnvError, TableError
from harness import layout
from harness.skeleton import SeriesLayout

# Reserved variables never exported as columns. REPETITION stays a column.
EXCLUDED_COLUMNS = ("EXP_SRC_DIR",)


def balance_multiline(values: dict[str, str], where: str = "") -> dict[str, list[str]]:
    """Split every value on newlines and broadcast single values to the longest one.

    Example: {"a": "1\\n2", "b": "x"} -> {"a": ["1", "2"], "b": ["x", "x"]}

    Raises:
        TableError: If two values have different numbers of rows, neither being 1.
    """
    split = {var: val.split("\n") for var, val in values.items()}
    max_length = max((len(rows) for rows in split.values()), default=1)

    balanced: dict[str, list[str]] = {}
    for var, rows in split.items():
        if len(rows) == 1 and max_length > 1:
            rows = rows * max_length
        elif len(rows) != max_length:
            raise TableError(
                f"Mismatched number of values for {var} {len(rows)}, "
                f"other value in {where} has {max_length}"
            )
        balanced[var] = rows
    return balanced


class ResultAggregator:
    """Collects `out_*` files of every run in a series into one rectangular table."""

    def __init__(
        self,
        series_dir: str | Path,
        na_value: str = "NA",
        logger: logging.Logger | None = None,
    ):
        """Initialize aggregator with a series directory.

        Args:
            series_dir: Path to the experiment series directory
            na_value: Placeholder for variables a run did not produce
            logger: Logging handle, defaults to this module's logger
        """
        self.series = SeriesLayout(series_dir)
        self.na_value = na_value
        self.logger = logger or logging.getLogger(__name__)

    def collect_run(self, run_dir: Path) -> dict[str, str]:
        """Read the run's environment and its `out_<name>` files into one mapping.

        An `out_<name>` file shadows an environment variable of the same name.

        Raises:
            TableError: If a file is called `out_` with an empty name.
        """
        env_file = run_dir / layout.RUN_ENV_FILE
        try:
            environment = Environment.from_file(env_file)
        except EnvError as e:
            self.logger.error(
                "could not load environment variables from %s in %s: %s",
                layout.RUN_ENV_FILE,
                run_dir,
                e,
            )
            environment = Environment()
        value_by_var = environment.without(EXCLUDED_COLUMNS).to_dict()

        out_files = sorted(
            (
                p
                for p in run_dir.iterdir()
                if p.is_file() and p.name.startswith(layout.OUT_FILE_PREFIX)
            ),
            key=lambda p: p.name,
        )
        for file in out_files:
            var = file.name[len(layout.OUT_FILE_PREFIX):]
            if not var:
                raise TableError(
                    f"in {run_dir}: variable name missing (prefix {layout.OUT_FILE_PREFIX} alone is not permitted)"
                )
            if var in value_by_var:
                self.logger.warning(
                    "in %s: %s%s shadows input environment variable $%s",
                    run_dir,
                    layout.OUT_FILE_PREFIX,
                    var,
                    var,
                )
            value_by_var[var] = file.read_text(encoding="utf-8", errors="replace").strip()

        return value_by_var

    def collect(self) -> dict[str, list[str]]:
        """Build the output table over all run directories, in directory name order.

        A run that lacks a variable contributes one "NA" per row it produced.
        """
        per_run: list[tuple[Path, dict[str, list[str]]]] = []
        for run_dir in self.series.run_dirs():
            self.logger.debug("fetching vars from: %s", run_dir)
            balanced = balance_multiline(self.collect_run(run_dir), where=str(run_dir))
            per_run.append((run_dir, balanced))

        names = sorted({var for _, balanced in per_run for var in balanced})
        table: dict[str, list[str]] = {name: [] for name in names}

        for run_dir, balanced in per_run:
            rows = max((len(v) for v in balanced.values()), default=1)
            for name in names:
                if name in balanced:
                    table[name].extend(balanced[name])
                else:
                    self.logger.warning(
                        "experiment in %s misses value for variable: %s", run_dir, name
                    )
                    table[name].extend([self.na_value] * rows)

        return table

    def export_csv(self, table: dict[str, list[str]], output_path: Path) -> None:
        """Write `table` as CSV, header sorted by column name.

        An empty table still creates an empty file.
        """
        lengths = {len(values) for values in table.values()}
        assert len(lengths) <= 1, f"Content has unequal amount of values: {table}"

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", newline="", encoding="utf-8") as f:
            if not table:
                return
            writer = csv.writer(f)
            header = sorted(table)
            writer.writerow(header)
            for i in range(lengths.pop()):
                writer.writerow([table[name][i] for name in header])

    def make_table(self, output_path: Path | None = None) -> Path:
        """Collect all output and write `<series>/<series name>.csv`."""
        table = self.collect()
        self.logger.info("Collected output for %d keys", len(table))
        self.logger.info("Found keys: %s", sorted(table))

        output_path = output_path or self.series.csv_path
        self.export_csv(table, output_path)
        self.logger.info("Wrote %s", output_path)
        return output_path
