"""Experiment runner orchestrating series creation, scheduling and trial reports."""

from __future__ import annotations

import logging
import random
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from envsets.errors import HarnessError, HarnessRunError
from harness.executor import RunExecutor
from harness.scheduler import RunScheduler
from harness.skeleton import SeriesLayout, build_series_directory, generate_series_path

from experiments.config import HarnessConfig, save_config
from experiments.logs import attach_file_log, console_suppressed, detach_handler
from experiments.report import collect_trial_output, create_report


@dataclass
class TrialOutcome:
    report: str
    error: HarnessError | None
    series_dir: Path

    @property
    def success(self) -> bool:
        return self.error is None


class ExperimentRunner:
    """Coordinates series directory, run scheduler and logging for one invocation."""

    def __init__(
        self,
        config: HarnessConfig | None = None,
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or HarnessConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.scheduler = RunScheduler(
            executor=RunExecutor(logger=self.logger),
            logger=self.logger,
            rng=rng,
        )

    def _check_source(self, experiment: Path) -> Path:
        experiment = Path(experiment)
        if not experiment.is_dir():
            raise HarnessRunError(str(experiment), "is not directory")
        experiment = experiment.resolve()
        if experiment == Path.cwd().resolve():
            raise HarnessRunError(
                experiment.name, "Cannot start experiment run from the experiment source folder."
            )
        return experiment

    def run(
        self,
        experiment: str | Path,
        repetitions: int | None = None,
        output: str | Path | None = None,
        show_progress: bool = True,
        limit: int | None = None,
    ) -> SeriesLayout:
        """Create a series directory for `experiment` and execute its run matrix.

        Args:
            experiment: Experiment source directory
            repetitions: Repetitions per combination, defaults to the config value
            output: Series directory, defaults to `<source name>-<timestamp>` in the cwd
            show_progress: Display a progress bar
            limit: Execute at most this many runs

        Returns:
            Layout of the created series directory

        Raises:
            HarnessError: If the series cannot be created or a run fails. Runs that
                completed before the failure stay on disk.
        """
        experiment = self._check_source(Path(experiment))
        if repetitions is None:
            repetitions = self.config.repetitions
        if repetitions < 1:
            raise HarnessRunError(experiment.name, f"invalid repetition count {repetitions}")
        if output is None:
            output = generate_series_path(experiment, self.config.series_name_format)

        series = build_series_directory(experiment, output, logger=self.logger)
        save_config(self.config, series.config_path)

        file_log = attach_file_log(self.logger, series.exomat_log)
        try:
            results = self.scheduler.run(
                series,
                experiment,
                repetitions,
                limit=limit,
                show_progress=show_progress,
            )
            self.logger.info(
                "Completed %d run(s) of %s in %s", len(results), experiment.name, series.series_dir
            )
        except HarnessError as e:
            self.logger.error("%s", e)
            raise
        finally:
            detach_handler(self.logger, file_log)

        return series

    def trial(self, experiment: str | Path) -> TrialOutcome:
        """Run one combination once in a temporary series and report on it.

        Console logging is suppressed during execution; the report contains the
        tool log, the script's stdout/stderr, its `out_` files and its result.
        """
        experiment = self._check_source(Path(experiment))
        stamp = datetime.now().strftime("exomat_trial-%Y-%m-%d-%H-%M-%S-%f")
        trial_dir = Path(tempfile.gettempdir()) / stamp

        error: HarnessError | None = None
        with console_suppressed(self.logger):
            try:
                self.run(experiment, repetitions=1, output=trial_dir, show_progress=False, limit=1)
            except HarnessError as e:
                error = e

        series = SeriesLayout(trial_dir)
        if not series.runs_dir.is_dir():
            # the series could not even be created, nothing to report on
            assert error is not None
            raise error

        report = create_report(
            experiment.name,
            error,
            series.stdout_log.read_text(encoding="utf-8", errors="replace"),
            series.stderr_log.read_text(encoding="utf-8", errors="replace"),
            collect_trial_output(trial_dir),
            series.exomat_log.read_text(encoding="utf-8", errors="replace"),
        )

        if not self.config.keep_trial_dir:
            shutil.rmtree(trial_dir, ignore_errors=True)

        return TrialOutcome(report=report, error=error, series_dir=trial_dir)
