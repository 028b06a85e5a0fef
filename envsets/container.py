"""
Set algebra over environment combinations.

Every edit is a whole-set replacement: the container is rebuilt as a complete
cartesian product of the variable domains, so no partial combination survives
an edit.
"""

from __future__ import annotations

import itertools
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from envsets.environment import ENV_FILE_SUFFIX, Environment, check_env_names
from envsets.errors import EnvError

logger = logging.getLogger(__name__)

EditRequest = Mapping[str, Sequence[str]]


def fetch_env_files(env_dir: str | Path) -> list[Path]:
    """Return every regular `*.env` file in `env_dir`, sorted by file name."""
    env_dir = Path(env_dir)
    if not env_dir.is_dir():
        raise EnvError(f"{env_dir} is not a directory")
    return sorted(
        (p for p in env_dir.iterdir() if p.is_file() and p.suffix == ENV_FILE_SUFFIX),
        key=lambda p: p.name,
    )


def value_domains(environments: Iterable[Environment]) -> dict[str, list[str]]:
    """Collect the deduplicated, sorted values in use for every variable."""
    domains: dict[str, set[str]] = {}
    for environment in environments:
        for var, val in environment.to_dict().items():
            domains.setdefault(var, set()).add(val)
    return {var: sorted(vals) for var, vals in sorted(domains.items())}


def assemble_all(base: Environment, domains: EditRequest) -> list[Environment]:
    """Combine `base` with every element of the cartesian product of `domains`.

    Variables are enumerated in name order and values in the order given, so the
    result is deterministic. An empty `domains` yields a single copy of `base`.
    """
    names = sorted(domains)
    combinations = []
    for values in itertools.product(*(domains[name] for name in names)):
        combo = Environment(base.to_dict())
        combo.extend(dict(zip(names, values)))
        combinations.append(combo)
    logger.debug("Finished assembling %d environments", len(combinations))
    return combinations


def _exists(environments: Sequence[Environment], var: str) -> bool:
    return any(env.contains(var) for env in environments)


class EnvironmentContainer:
    """Ordered collection of Environments, edited only through add/append/remove."""

    def __init__(
        self,
        environments: Iterable[Environment] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._environments: list[Environment] = list(environments or [])
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_files(
        cls, env_dir: str | Path, logger: logging.Logger | None = None
    ) -> "EnvironmentContainer":
        """Load one Environment per `.env` file of `env_dir`, in file name order."""
        return cls(
            (Environment.from_file(f) for f in fetch_env_files(env_dir)),
            logger=logger,
        )

    @property
    def environments(self) -> list[Environment]:
        return list(self._environments)

    def __len__(self) -> int:
        return len(self._environments)

    def __iter__(self):
        return iter(self._environments)

    def variables(self) -> list[str]:
        return sorted({var for env in self._environments for var in env.variables})

    def serialize(self, env_dir: str | Path) -> list[Path]:
        """Write every Environment to `env_dir/<i>.env`, zero padded to the count's width."""
        env_dir = Path(env_dir)
        width = len(str(len(self._environments)))
        written = []
        for counter, environment in enumerate(self._environments):
            path = env_dir / f"{counter:0{width}d}{ENV_FILE_SUFFIX}"
            environment.to_file(path)
            written.append(path)
        return written

    def add(self, to_add: EditRequest) -> None:
        """Combine every existing Environment with every combination of `to_add`.

        Raises:
            EnvError: If `to_add` is empty, a variable has no value, a name is invalid
                or reserved, or a variable is already set in any Environment.
        """
        if not to_add:
            raise EnvError("No env variables to add. Aborting.")
        for var, vals in to_add.items():
            if not vals:
                raise EnvError(f"Found variable without value: {var}. Aborting.")
        check_env_names(to_add)

        for var in sorted(to_add):
            if _exists(self._environments, var):
                raise EnvError(f"Var '{var}' is already set")

        domains = {var: list(vals) for var, vals in to_add.items()}
        bases = self._environments or [Environment()]
        names = sorted(domains)
        combined = []
        for values in itertools.product(*(domains[name] for name in names)):
            for base in bases:
                combo = Environment(base.to_dict())
                combo.extend(dict(zip(names, values)))
                combined.append(combo)

        self.logger.debug("Added %s, now %d environments", names, len(combined))
        self._environments = combined

    def append(self, to_append: EditRequest) -> None:
        """Add values to existing variables and regenerate the full cartesian product.

        Entries without values are skipped with a warning.

        Raises:
            EnvError: If a variable does not exist in any Environment.
        """
        if not to_append:
            return

        request: dict[str, list[str]] = {}
        for var, vals in to_append.items():
            if not vals:
                self.logger.warning("Cannot edit variable without value. Skipping %s.", var)
                continue
            request[var] = list(vals)
        check_env_names(to_append)

        for var in sorted(request):
            if not _exists(self._environments, var):
                raise EnvError(f"Variable {var} cannot be edited: Item does not exist.")

        domains = value_domains(self._environments)
        self.logger.debug("All possible environment values: %s", domains)
        for var, vals in request.items():
            domains[var] = sorted(set(domains[var]) | set(vals))

        self._environments = assemble_all(Environment(), domains)

    def remove(self, to_remove: EditRequest) -> None:
        """Remove values, or whole variables when given no values, then regenerate.

        A variable whose last value is removed disappears from every Environment.

        Raises:
            EnvError: If a variable or one of its values does not exist.
        """
        if not to_remove:
            return
        check_env_names(to_remove)

        domains = value_domains(self._environments)
        self.logger.debug("All possible environment values: %s", domains)

        for var in sorted(to_remove):
            if var not in domains:
                raise EnvError(f"Variable {var} cannot be edited: Item does not exist.")
            for val in dict.fromkeys(to_remove[var]):
                if val not in domains[var]:
                    raise EnvError(
                        f"Value {val} of {var} cannot be edited: Item does not exist."
                    )

        for var, vals in to_remove.items():
            remaining = [v for v in domains[var] if v not in set(vals)]
            if not vals or not remaining:
                del domains[var]
            else:
                domains[var] = remaining

        self._environments = assemble_all(Environment(), domains)


def generate_environments(
    env_dir: str | Path,
    to_add: EditRequest | None = None,
    to_append: EditRequest | None = None,
    to_remove: EditRequest | None = None,
    logger: logging.Logger | None = None,
) -> EnvironmentContainer:
    """Apply add, then append, then remove to the combinations in `env_dir`.

    All edits are validated in memory and the new `.env` files are written to a
    staging directory before the old files are replaced.
    """
    logger = logger or logging.getLogger(__name__)
    env_dir = Path(env_dir)
    container = EnvironmentContainer.from_files(env_dir, logger=logger)

    if to_add:
        container.add(to_add)
    if to_append:
        container.append(to_append)
    if to_remove:
        container.remove(to_remove)

    with tempfile.TemporaryDirectory(prefix=".exomat_envs-", dir=env_dir) as staging:
        staged = container.serialize(staging)
        for old in fetch_env_files(env_dir):
            old.unlink()
        for path in staged:
            os.replace(path, env_dir / path.name)
    logger.info("Wrote %d environment file(s) to %s", len(container), env_dir)
    return container


def environment_table(env_dir: str | Path) -> tuple[list[str], list[list[str]]]:
    """Return a header `file, VAR...` and one row per `.env` file.

    Raises:
        EnvError: If not all environments define the same variables.
    """
    header: list[str] | None = None
    rows: list[list[str]] = []
    for env_file in fetch_env_files(env_dir):
        environment = Environment.from_file(env_file)
        keys = environment.variables
        if header is None:
            header = ["file", *keys]
        elif header[1:] != keys:
            raise EnvError("not all envs have the same keys")
        rows.append([env_file.name, *(environment.get(k) or "" for k in keys)])
    return header or ["file"], rows
