"""Directory skeletons for experiment sources, series and runs."""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from envsets.environment import Environment
from envsets.errors import HarnessCreateError, HarnessRunError
from envsets.schemas import ReservedVariables, RunDescriptor
from harness import layout

logger = logging.getLogger(__name__)

RUN_FILE_TEMPLATE = """#!/usr/bin/env bash
# Executed once per environment combination and repetition, inside its run directory.
#
# Every variable from envs/*.env is exported, together with
#   $REPETITION   index of the current repetition, starting at 0
#   $EXP_SRC_DIR  absolute path of the experiment source directory
#
# Write results to files named out_<name> in the current directory,
# `exomat make-table` collects them into one CSV file.

set -euo pipefail

"""


def create_harness_dir(directory: Path) -> Path:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise HarnessCreateError(str(directory), str(e)) from e
    return directory


def create_harness_file(file: Path) -> Path:
    """Create an empty file, failing if it already exists."""
    try:
        with open(file, "x"):
            pass
    except OSError as e:
        raise HarnessCreateError(str(file), str(e)) from e
    return file


def copy_harness_file(src: Path, dst: Path) -> Path:
    try:
        shutil.copy2(src, dst)
    except OSError as e:
        raise HarnessCreateError(str(dst), str(e)) from e
    return dst


def copy_harness_dir(src: Path, dst: Path) -> Path:
    """Copy the contents of `src` into `dst`."""
    try:
        shutil.copytree(src, dst, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise HarnessCreateError(str(dst), str(e)) from e
    return dst


class SeriesLayout:
    """Paths of one experiment series directory."""

    def __init__(self, series_dir: str | Path):
        self.series_dir = Path(series_dir)

    @property
    def name(self) -> str:
        return self.series_dir.resolve().name

    @property
    def src_dir(self) -> Path:
        return self.series_dir / layout.SERIES_SRC_DIR

    @property
    def runs_dir(self) -> Path:
        return self.series_dir / layout.SERIES_RUNS_DIR

    @property
    def env_dir(self) -> Path:
        return self.src_dir / layout.SRC_ENV_DIR

    @property
    def run_file(self) -> Path:
        return self.src_dir / layout.SRC_TEMPLATE_DIR / layout.SRC_RUN_FILE

    @property
    def stdout_log(self) -> Path:
        return self.runs_dir / layout.SERIES_STDOUT_LOG

    @property
    def stderr_log(self) -> Path:
        return self.runs_dir / layout.SERIES_STDERR_LOG

    @property
    def exomat_log(self) -> Path:
        return self.runs_dir / layout.SERIES_EXOMAT_LOG

    @property
    def config_path(self) -> Path:
        return self.series_dir / layout.SERIES_CONFIG_FILE

    @property
    def csv_path(self) -> Path:
        return self.series_dir / f"{self.name}.csv"

    def run_dirs(self) -> list[Path]:
        """Every `run_*` directory below `runs/`, sorted by name."""
        if not self.runs_dir.is_dir():
            return []
        return sorted(
            (
                p
                for p in self.runs_dir.iterdir()
                if p.is_dir() and p.name.startswith(layout.RUN_DIR_PREFIX)
            ),
            key=lambda p: p.name,
        )


def create_source_directory(
    exp_src_dir: str | Path,
    template_dir: str | Path | None = None,
    logger: logging.Logger | None = None,
) -> Path:
    """Create a new experiment source directory.

    Layout::

        EXPERIMENT/
          |-> .exomat_source
          |-> template/
          |    \\-> run.sh [EXECUTABLE]
          \\-> envs/
               \\-> 0.env [EMPTY]

    If `template_dir` exists, its contents populate `template/` instead of the
    default `run.sh`.

    Raises:
        HarnessCreateError: If the directory already is an experiment source or
            any entry cannot be created.
    """
    logger = logger or logging.getLogger(__name__)
    exp_src_dir = Path(exp_src_dir)

    create_harness_dir(exp_src_dir)
    create_harness_file(exp_src_dir / layout.MARKER_SRC)
    create_harness_dir(exp_src_dir / layout.SRC_ENV_DIR)
    create_harness_file(exp_src_dir / layout.SRC_ENV_DIR / layout.SRC_ENV_FILE)
    template = create_harness_dir(exp_src_dir / layout.SRC_TEMPLATE_DIR)

    if template_dir is not None and Path(template_dir).expanduser().is_dir():
        custom = Path(template_dir).expanduser()
        logger.info("Using custom template from %s", custom)
        copy_harness_dir(custom, template)
    else:
        run_file = template / layout.SRC_RUN_FILE
        try:
            fd = os.open(run_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o775)
            with os.fdopen(fd, "w") as f:
                f.write(RUN_FILE_TEMPLATE)
        except OSError as e:
            raise HarnessCreateError(str(run_file), str(e)) from e
        run_file.chmod(0o775)

    logger.info("Experiment harness created under %s", exp_src_dir)
    return exp_src_dir


def build_series_directory(
    exp_source: str | Path,
    series_dir: str | Path,
    logger: logging.Logger | None = None,
) -> SeriesLayout:
    """Create a series directory with a copy of `exp_source` and empty batch logs.

    Raises:
        HarnessRunError: If `exp_source` is not an experiment source directory or
            `series_dir` lies inside it.
        HarnessCreateError: If an entry cannot be created.
    """
    logger = logger or logging.getLogger(__name__)
    exp_source = Path(exp_source)
    series = SeriesLayout(series_dir)

    logger.debug("attempting to build series directory from %s", exp_source)
    if not exp_source.is_dir():
        raise HarnessRunError(str(exp_source), "is not directory")
    if not (exp_source / layout.MARKER_SRC).is_file():
        raise HarnessRunError(str(exp_source), "is not an experiment source directory")
    if series.series_dir.resolve().is_relative_to(exp_source.resolve()):
        raise HarnessRunError(
            str(exp_source), "can not generate output inside of experiment dir"
        )

    create_harness_dir(series.series_dir)
    create_harness_file(series.series_dir / layout.MARKER_SERIES)
    create_harness_dir(series.runs_dir)
    create_harness_file(series.stdout_log)
    create_harness_file(series.stderr_log)
    create_harness_file(series.exomat_log)

    copy_harness_dir(exp_source, series.src_dir)
    (series.src_dir / layout.MARKER_SRC).unlink()
    create_harness_file(series.src_dir / layout.MARKER_SRC_CP)

    logger.info("Created new experiment series dir at %s", series.series_dir)
    return series


def build_run_directory(
    series: SeriesLayout,
    run: RunDescriptor,
    reserved: ReservedVariables,
) -> Path:
    """Populate `run.run_dir` with the script, the combination and the reserved variables.

    The reserved variables are written into the run's copy of the combination,
    never into the source file.
    """
    if not series.runs_dir.is_dir():
        raise HarnessCreateError(
            run.name, f"{layout.SERIES_RUNS_DIR} dir does not exist in {series.series_dir}"
        )

    try:
        run.run_dir.mkdir()
    except OSError as e:
        raise HarnessCreateError(str(run.run_dir), str(e)) from e
    create_harness_file(run.run_dir / layout.MARKER_RUN)

    copy_harness_file(series.run_file, run.run_dir / layout.RUN_RUN_FILE)
    env_path = copy_harness_file(run.env_file, run.run_dir / layout.RUN_ENV_FILE)

    environment = Environment.from_file(env_path)
    environment.extend(reserved.to_environment())
    environment.to_file(env_path)

    return run.run_dir


def generate_series_path(
    exp_source: str | Path,
    name_format: str = "{name}-%Y-%m-%d-%H-%M-%S",
    now: datetime | None = None,
    base_dir: str | Path | None = None,
) -> Path:
    """Default series directory `<base_dir>/<source name>-<timestamp>`.

    Raises:
        HarnessCreateError: If the generated path already exists.
    """
    now = now or datetime.now()
    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
    name = now.strftime(name_format.replace("{name}", Path(exp_source).resolve().name))
    path = base_dir.resolve() / name
    if path.exists():
        raise HarnessCreateError(str(path), "already exists")
    return path
