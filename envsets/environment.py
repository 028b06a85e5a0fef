"""
Single environment combination and its .env file representation.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

from dotenv import dotenv_values

from envsets.errors import EnvError

ENV_FILE_SUFFIX = ".env"

RESERVED_VARIABLES = ("EXP_SRC_DIR", "REPETITION")

_ENV_NAME_RE = re.compile(r"^[A-Z_][0-9A-Z_]*$")


def check_env_names(names: Iterable[str]) -> None:
    """Reject variable names that are not upper case alphanumeric or reserved."""
    names = list(names)
    invalid = [name for name in names if not _ENV_NAME_RE.match(name)]
    if invalid:
        raise EnvError(
            "Invalid environment variable name(s), only upper case alphanumeric "
            f"and _ allowed: {invalid}".replace('"', "'")
        )
    reserved = [name for name in names if name in RESERVED_VARIABLES]
    if reserved:
        raise EnvError(f"Variable name(s) reserved for internal use: {reserved}")


def _quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


class Environment:
    """One assignment of string values to uniquely named variables."""

    def __init__(self, envs: Mapping[str, str] | None = None) -> None:
        self._envs: dict[str, str] = dict(envs or {})

    @classmethod
    def from_file(cls, file: str | Path) -> "Environment":
        """Read all variables of a .env file without touching the process environment.

        Raises:
            EnvError: If the file does not end in ".env", cannot be read, or holds a
                line without an assignment.
        """
        file = Path(file)
        if file.suffix != ENV_FILE_SUFFIX:
            raise EnvError(f"env file with missing extension: {file}")
        if not file.is_file():
            raise EnvError(f"env file not found: {file}")

        try:
            values = dotenv_values(file, interpolate=False)
        except (OSError, UnicodeDecodeError) as e:
            raise EnvError(f"could not read {file}: {e}") from e

        envs: dict[str, str] = {}
        for var, val in values.items():
            if val is None:
                raise EnvError(f"variable {var} in {file} has no value assigned")
            envs[var] = val
        return cls(envs)

    def to_file(self, file: str | Path) -> None:
        """Serialize to `file`, one `KEY="value"` line per variable, sorted by name.

        Replaces the file if it exists; parent directories must exist.
        """
        file = Path(file)
        lines = [f"{var}={_quote(self._envs[var])}\n" for var in sorted(self._envs)]
        try:
            file.write_text("".join(lines), encoding="utf-8")
        except OSError as e:
            raise EnvError(f"could not write {file}: {e}") from e

    def to_dict(self) -> dict[str, str]:
        return dict(self._envs)

    def contains(self, var: str) -> bool:
        return var in self._envs

    def get(self, var: str) -> str | None:
        return self._envs.get(var)

    def extend(self, other: "Environment | Mapping[str, str]") -> None:
        """Copy every variable of `other` into this Environment, overwriting on conflict."""
        if isinstance(other, Environment):
            other = other._envs
        self._envs.update(other)

    def without(self, names: Iterable[str]) -> "Environment":
        drop = set(names)
        return Environment({k: v for k, v in self._envs.items() if k not in drop})

    @property
    def variables(self) -> list[str]:
        return sorted(self._envs)

    def __contains__(self, var: object) -> bool:
        return var in self._envs

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._envs))

    def __len__(self) -> int:
        return len(self._envs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Environment):
            return NotImplemented
        return self._envs == other._envs

    def __hash__(self) -> int:
        return hash(frozenset(self._envs.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={self._envs[k]!r}" for k in sorted(self._envs))
        return f"Environment({inner})"
