"""
Ordering and fail-fast execution of the (combination, repetition) run matrix.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path

from tqdm import tqdm

from envsets.container import fetch_env_files
from envsets.errors import HarnessRunError
from envsets.schemas import ReservedVariables, RunDescriptor
from harness.executor import ExecutionResult, RunExecutor
from harness.skeleton import SeriesLayout, build_run_directory


def shuffle_runs(
    env_files: list[Path],
    repetitions: int,
    rng: random.Random | None = None,
) -> list[tuple[Path, int]]:
    """List every (env file, repetition) pair, shuffled, then stably sorted by repetition.

    All repetition-n runs come before any repetition-(n+1) run, in random
    relative order.
    """
    rng = rng or random.Random()
    running_order = [(env, rep) for env in env_files for rep in range(repetitions)]
    rng.shuffle(running_order)
    running_order.sort(key=lambda pair: pair[1])
    return running_order


class RunScheduler:
    """Executes the run matrix of a series one subprocess at a time."""

    def __init__(
        self,
        executor: RunExecutor | None = None,
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.executor = executor or RunExecutor(logger=self.logger)
        self.rng = rng or random.Random()

    def plan(self, series: SeriesLayout, repetitions: int) -> list[RunDescriptor]:
        """Enumerate the run matrix in execution order.

        Raises:
            HarnessRunError: If the series holds no environment files.
        """
        if repetitions < 1:
            raise HarnessRunError(series.name, f"invalid repetition count {repetitions}")

        env_files = fetch_env_files(series.env_dir)
        if not env_files:
            raise HarnessRunError(series.name, f"No environments found in {series.env_dir}")

        width = len(str(repetitions))
        return [
            RunDescriptor.for_pair(env, rep, series.runs_dir, width)
            for env, rep in shuffle_runs(env_files, repetitions, self.rng)
        ]

    def run(
        self,
        series: SeriesLayout,
        exp_source: Path,
        repetitions: int,
        limit: int | None = None,
        show_progress: bool = True,
    ) -> list[ExecutionResult]:
        """Build and execute every planned run, stopping at the first failure.

        Args:
            series: Series directory created by `build_series_directory`
            exp_source: Experiment source, exported as EXP_SRC_DIR
            repetitions: Number of repetitions per combination
            limit: Execute only the first `limit` planned runs (trial mode)
            show_progress: Display a progress bar

        Raises:
            HarnessRunError: On the first run that exits non-zero; later runs are
                never started.
        """
        order = self.plan(series, repetitions)
        if limit is not None:
            order = order[:limit]

        self.logger.info("Starting experiment runs for %s", exp_source)
        results: list[ExecutionResult] = []
        pbar = tqdm(
            total=len(order),
            desc="Runs",
            unit="run",
            ncols=100,
            disable=not show_progress,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
        )
        try:
            for run in order:
                reserved = ReservedVariables(exp_src_dir=exp_source, repetition=run.repetition)
                build_run_directory(series, run, reserved)
                self.logger.debug("Using envs from %s", run.env_file)

                result = self.executor.execute(
                    run.run_dir,
                    series.stdout_log,
                    series.stderr_log,
                    extra_env=reserved.to_environment().to_dict(),
                )
                results.append(result)
                if not result.success:
                    raise HarnessRunError(run.name, result.error or "")

                pbar.update(1)
        finally:
            pbar.close()

        return results
