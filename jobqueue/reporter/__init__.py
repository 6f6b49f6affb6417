"""
Stats reporter module.
"""

from jobqueue.reporter.main import StatsReporter

__all__ = ["StatsReporter"]
