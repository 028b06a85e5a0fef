"""
Experiments Module

Configuration, orchestration, aggregation and CLI of the experiment harness.

This module provides:
- YAML-based harness configuration
- Series execution and single-run trials with reports
- Aggregation of run outputs into one CSV table per series
- Logging shared by all components
- The `exomat` command line interface
"""

__version__ = "0.1.0"
