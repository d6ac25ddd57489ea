"""
Progress monitoring for the Photo Migrator.
"""

from .progress_tracker import ProgressMetrics, ProgressReporter

__all__ = ["ProgressMetrics", "ProgressReporter"]
