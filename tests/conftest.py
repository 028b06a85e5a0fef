from __future__ import annotations

from pathlib import Path

import pytest

from envsets.environment import Environment
from harness import layout
from harness.skeleton import create_source_directory


def write_script(exp_source: Path, body: str) -> Path:
    """Replace the experiment's run.sh with a /bin/sh script."""
    script = exp_source / layout.SRC_TEMPLATE_DIR / layout.SRC_RUN_FILE
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(0o755)
    return script


def write_envs(exp_source: Path, *environments: dict[str, str]) -> None:
    env_dir = exp_source / layout.SRC_ENV_DIR
    for old in env_dir.glob("*.env"):
        old.unlink()
    for i, envs in enumerate(environments):
        Environment(envs).to_file(env_dir / f"{i}.env")


@pytest.fixture
def exp_source(tmp_path: Path) -> Path:
    """An experiment source `Source/` whose script records FOO and REPETITION."""
    source = create_source_directory(tmp_path / "Source", template_dir=None)
    write_envs(source, {"FOO": "bar"}, {"FOO": "foo"})
    write_script(
        source,
        'echo "run $FOO $REPETITION"\n'
        'printf "%s" "$FOO-$REPETITION" > out_result',
    )
    return source


@pytest.fixture
def set_script():
    return write_script


@pytest.fixture
def set_envs():
    return write_envs
