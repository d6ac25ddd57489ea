"""
Cost protection for the Photo Migrator.
"""

from .guard import Admission, CostGuard, UsageDelta

__all__ = ["Admission", "CostGuard", "UsageDelta"]
