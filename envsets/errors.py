"""Exception hierarchy shared by the harness packages."""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for every recoverable harness failure."""


class EnvError(HarnessError):
    """Invalid environment edit request or malformed .env file."""

    def __init__(self, reason: str):
        super().__init__(f"Something went wrong in .env generation: {reason}")
        self.reason = reason


class HarnessCreateError(HarnessError):
    """A file or directory of the harness layout could not be created or copied."""

    def __init__(self, entry: str, reason: str):
        super().__init__(f"Cannot create {entry}: {reason}")
        self.entry = entry
        self.reason = reason


class HarnessRunError(HarnessError):
    """An experiment could not be started or one of its runs failed."""

    def __init__(self, experiment: str, err: str):
        super().__init__(f"Encountered error while trying to run {experiment}: {err}")
        self.experiment = experiment
        self.err = err


class TableError(HarnessError):
    """Run outputs could not be reconciled into a rectangular table."""

    def __init__(self, reason: str):
        super().__init__(f"CSV conversion failed: {reason}")
        self.reason = reason


class MarkerError(HarnessError):
    """No directory carrying the requested marker file was found."""

    def __init__(self, reason: str):
        super().__init__(f"Error trying to determine exomat-related dir: {reason}")
        self.reason = reason
