from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, Field

from envsets.environment import Environment

TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_dict(self) -> dict[str, object]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class ReservedVariables(BaseSchema):
    """Variables injected into every run, never persisted into source .env files."""

    exp_src_dir: Path
    repetition: int = Field(ge=0)

    def to_environment(self) -> Environment:
        return Environment(
            {
                "EXP_SRC_DIR": str(self.exp_src_dir.resolve()),
                "REPETITION": str(self.repetition),
            }
        )


class RunDescriptor(BaseSchema):
    """One (combination, repetition) pair of the run matrix."""

    env_file: Path
    repetition: int = Field(ge=0)
    run_dir: Path

    @classmethod
    def for_pair(
        cls, env_file: Path, repetition: int, runs_dir: Path, width: int = 1
    ) -> "RunDescriptor":
        """Name the run directory `run_<combination>_rep<repetition>`, zero padded to `width`."""
        name = f"run_{env_file.stem}_rep{repetition:0{max(width, 1)}d}"
        return cls(env_file=env_file, repetition=repetition, run_dir=runs_dir / name)

    @property
    def combination(self) -> str:
        return self.env_file.stem

    @property
    def name(self) -> str:
        return self.run_dir.name
