"""
Harness Module

Filesystem layout and sequential execution of experiment runs.

This module provides:
- Experiment source / series / run directory skeletons
- Marker-file discovery of the enclosing harness directory
- Subprocess-based execution of one run with merged environment variables
- Shuffled, repetition-ordered, fail-fast scheduling of the run matrix

Execution is strictly sequential: one subprocess at a time, writing to
shared append-only log files.
"""

__version__ = "0.1.0"
