"""
Default file/directory names of the harness layout and marker discovery.
"""

from __future__ import annotations

import logging
from pathlib import Path

from envsets.errors import MarkerError

logger = logging.getLogger(__name__)

# experiment source directory
SRC_TEMPLATE_DIR = "template"
SRC_RUN_FILE = "run.sh"
SRC_ENV_DIR = "envs"
SRC_ENV_FILE = "0.env"

# experiment series directory
SERIES_SRC_DIR = ".src"
SERIES_RUNS_DIR = "runs"
SERIES_CONFIG_FILE = "config.yaml"
SERIES_EXOMAT_LOG = "exomat.log"
SERIES_STDERR_LOG = "stderr.log"
SERIES_STDOUT_LOG = "stdout.log"

# experiment run directory
RUN_RUN_FILE = "run.sh"
RUN_ENV_FILE = "environment.env"
RUN_DIR_PREFIX = "run_"
OUT_FILE_PREFIX = "out_"

# marker files
MARKER_SRC = ".exomat_source"
MARKER_SRC_CP = ".exomat_source_copy"
MARKER_SERIES = ".exomat_series"
MARKER_RUN = ".exomat_run"


def find_marker(location: str | Path, marker_name: str) -> Path:
    """Walk up from `location` to the first directory containing `marker_name`.

    Raises:
        MarkerError: If `location` is not a directory or the root is reached.
    """
    location = Path(location).resolve()
    if not location.is_dir():
        raise MarkerError("location does not exist/is not dir")

    for candidate in (location, *location.parents):
        if (candidate / marker_name).is_file():
            logger.debug("found marker %s in %s", marker_name, candidate)
            return candidate

    raise MarkerError(
        f"traversed up to fs root, no {marker_name} marker found; maybe go somewhere else using cd?"
    )


def find_marker_pwd(marker_name: str) -> Path:
    logger.debug("searching for marker %s from pwd", marker_name)
    return find_marker(Path.cwd(), marker_name)
