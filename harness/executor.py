"""
Subprocess executor for a single experiment run.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from envsets.environment import Environment
from envsets.errors import HarnessRunError
from harness import layout

_ANSI_RE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


@dataclass
class ExecutionResult:
    run_name: str
    success: bool
    returncode: int
    stderr: str
    runtime_ms: float

    @property
    def error(self) -> str | None:
        """ANSI-stripped stderr of a failed run, None on success."""
        if self.success:
            return None
        return strip_ansi(self.stderr).strip()


class RunExecutor:
    """
    Execute the run script of one run directory as a subprocess.

    The child's environment is the calling process environment, overridden by
    the run's environment file, overridden by `extra_env`. Its stdout/stderr are
    appended to the shared batch logs so consecutive runs stay in execution order.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def build_env(self, run_dir: Path, extra_env: Mapping[str, str] | None = None) -> dict[str, str]:
        env = os.environ.copy()
        env.update(Environment.from_file(run_dir / layout.RUN_ENV_FILE).to_dict())
        if extra_env:
            env.update(extra_env)
        return env

    def execute(
        self,
        run_dir: str | Path,
        stdout_log: str | Path,
        stderr_log: str | Path,
        extra_env: Mapping[str, str] | None = None,
    ) -> ExecutionResult:
        """Run `run_dir/run.sh` and wait for it to finish.

        Raises:
            HarnessRunError: If the run directory is incomplete or the script cannot
                be started at all. A non-zero exit is reported through the result.
        """
        run_dir = Path(run_dir).resolve()
        run_name = run_dir.name
        script = run_dir / layout.RUN_RUN_FILE

        if not script.is_file():
            raise HarnessRunError(run_name, f"missing {layout.RUN_RUN_FILE} in run directory")
        if not (run_dir / layout.RUN_ENV_FILE).is_file():
            raise HarnessRunError(run_name, f"missing {layout.RUN_ENV_FILE} in run directory")

        env = self.build_env(run_dir, extra_env)
        stderr_log = Path(stderr_log)
        offset = stderr_log.stat().st_size if stderr_log.exists() else 0

        self.logger.debug("%s: Starting execution", run_name)
        start = time.perf_counter()
        try:
            with open(stdout_log, "ab") as out_log, open(stderr_log, "ab") as err_log:
                completed = subprocess.run(
                    [str(script)],
                    stdout=out_log,
                    stderr=err_log,
                    env=env,
                    cwd=run_dir,
                )
        except OSError as e:
            raise HarnessRunError(run_name, str(e)) from e
        runtime_ms = (time.perf_counter() - start) * 1000
        self.logger.debug("%s: Finished run in %.1f ms", run_name, runtime_ms)

        with open(stderr_log, "rb") as f:
            f.seek(offset)
            stderr = f.read().decode("utf-8", errors="replace")

        result = ExecutionResult(
            run_name=run_name,
            success=completed.returncode == 0,
            returncode=completed.returncode,
            stderr=stderr,
            runtime_ms=runtime_ms,
        )
        self._log_run_result(result)
        return result

    def _log_run_result(self, result: ExecutionResult) -> None:
        if result.success:
            self.logger.info("%s finished successfully with exit status 0", result.run_name)
            if result.stderr:
                self.logger.warning("%s produced stderr output", result.run_name)
            else:
                self.logger.info("%s did not produce stderr output", result.run_name)
        else:
            self.logger.error(
                "%s finished with non-zero exit status %d", result.run_name, result.returncode
            )
