"""
GUI package for DNS Bench.

Web interface for running benchmarks and downloading CSV exports.
"""

from .app import create_app, run_gui

__all__ = ["create_app", "run_gui"]
