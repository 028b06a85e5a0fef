"""Tests for run ordering and fail-fast scheduling."""

from __future__ import annotations

import random
from collections import Counter
from pathlib import Path
from unittest.mock import patch

import pytest

from envsets.errors import HarnessRunError
from harness.executor import ExecutionResult
from harness.scheduler import RunScheduler, shuffle_runs
from harness.skeleton import build_series_directory


class RecordingExecutor:
    """Stands in for RunExecutor; fails the `fail_at`-th call (1-based)."""

    def __init__(self, fail_at: int | None = None):
        self.fail_at = fail_at
        self.calls: list[Path] = []

    def execute(self, run_dir, stdout_log, stderr_log, extra_env=None) -> ExecutionResult:
        self.calls.append(Path(run_dir))
        failed = len(self.calls) == self.fail_at
        return ExecutionResult(
            run_name=Path(run_dir).name,
            success=not failed,
            returncode=1 if failed else 0,
            stderr="broken\n" if failed else "",
            runtime_ms=0.0,
        )


@pytest.mark.parametrize("seed", range(5))
def test_shuffle_groups_by_repetition(seed: int) -> None:
    env_files = [Path(f"{i}.env") for i in range(4)]

    order = shuffle_runs(env_files, 3, random.Random(seed))

    assert [rep for _, rep in order] == sorted(rep for _, rep in order)
    assert Counter(order) == Counter((env, rep) for env in env_files for rep in range(3))


def test_shuffle_varies_within_repetition() -> None:
    env_files = [Path(f"{i}.env") for i in range(8)]
    orders = {
        tuple(env for env, _ in shuffle_runs(env_files, 1, random.Random(seed)))
        for seed in range(10)
    }

    assert len(orders) > 1


def test_plan_names_run_directories(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")

    plan = RunScheduler(rng=random.Random(0)).plan(series, 10)

    assert len(plan) == 2 * 10
    assert {run.name for run in plan if run.repetition == 3} == {"run_0_rep03", "run_1_rep03"}
    assert all(run.run_dir.parent == series.runs_dir for run in plan)


def test_plan_without_environments(exp_source: Path, tmp_path: Path, set_envs) -> None:
    set_envs(exp_source)
    series = build_series_directory(exp_source, tmp_path / "series")

    with pytest.raises(HarnessRunError, match="No environments found"):
        RunScheduler().plan(series, 1)


def test_plan_invalid_repetitions(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")

    with pytest.raises(HarnessRunError, match="invalid repetition count"):
        RunScheduler().plan(series, 0)


def test_runs_every_pair(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")
    executor = RecordingExecutor()

    results = RunScheduler(executor=executor).run(series, exp_source, 2, show_progress=False)

    assert len(results) == 4
    assert sorted(p.name for p in executor.calls) == [
        "run_0_rep0",
        "run_0_rep1",
        "run_1_rep0",
        "run_1_rep1",
    ]
    assert [p.name for p in series.run_dirs()] == sorted(p.name for p in executor.calls)


def test_stops_at_first_failure(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")
    executor = RecordingExecutor(fail_at=2)

    with pytest.raises(HarnessRunError, match="broken"):
        RunScheduler(executor=executor).run(series, exp_source, 3, show_progress=False)

    assert len(executor.calls) == 2
    assert len(series.run_dirs()) == 2


def test_limit(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")
    executor = RecordingExecutor()

    RunScheduler(executor=executor).run(series, exp_source, 3, limit=1, show_progress=False)

    assert len(executor.calls) == 1
    assert executor.calls[0].name.endswith("_rep0")


def test_real_failure_stops_later_repetitions(exp_source: Path, tmp_path: Path, set_script) -> None:
    set_script(
        exp_source,
        'if [ "$REPETITION" = "1" ]; then echo "rep 1 failed" >&2; exit 1; fi',
    )
    series = build_series_directory(exp_source, tmp_path / "series")

    with pytest.raises(HarnessRunError, match="rep 1 failed"):
        RunScheduler().run(series, exp_source, 3, show_progress=False)

    names = [p.name for p in series.run_dirs()]
    assert len(names) == 3
    assert sum(name.endswith("_rep0") for name in names) == 2
    assert not any(name.endswith("_rep2") for name in names)


def test_progress_counts_completed_runs(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")

    with patch("harness.scheduler.tqdm") as mock_tqdm:
        RunScheduler(executor=RecordingExecutor()).run(series, exp_source, 3, show_progress=False)

    assert mock_tqdm.call_args.kwargs["total"] == 6
    pbar = mock_tqdm.return_value
    assert pbar.update.call_count == 6
    assert all(c.args == (1,) for c in pbar.update.call_args_list)
    pbar.close.assert_called_once()


def test_progress_stops_before_failed_run(exp_source: Path, tmp_path: Path) -> None:
    series = build_series_directory(exp_source, tmp_path / "series")

    with patch("harness.scheduler.tqdm") as mock_tqdm:
        with pytest.raises(HarnessRunError):
            RunScheduler(executor=RecordingExecutor(fail_at=3)).run(
                series, exp_source, 2, show_progress=False
            )

    pbar = mock_tqdm.return_value
    assert pbar.update.call_count == 2
    pbar.close.assert_called_once()
