"""
Environment Sets Module

Pure in-memory algebra over environment-variable combinations.

This module implements:
- Environment: one concrete assignment of values to named variables
- EnvironmentContainer: the full set of combinations under test
- add/append/remove edits that regenerate a complete cartesian product
- .env file (de)serialization for one file per combination
- Reserved variables injected at run time (EXP_SRC_DIR, REPETITION)
"""

__version__ = "0.1.0"

from .container import EnvironmentContainer
from .environment import Environment
from .errors import (
    EnvError,
    HarnessCreateError,
    HarnessError,
    HarnessRunError,
    MarkerError,
    TableError,
)
from .schemas import ReservedVariables, RunDescriptor

__all__ = [
    "EnvError",
    "Environment",
    "EnvironmentContainer",
    "HarnessCreateError",
    "HarnessError",
    "HarnessRunError",
    "MarkerError",
    "ReservedVariables",
    "RunDescriptor",
    "TableError",
]
