"""
Utility helpers for the Photo Migrator.
"""

from .logging import EventAuditLogger, StructuredFormatter, get_logger, setup_logging

__all__ = ["EventAuditLogger", "StructuredFormatter", "get_logger", "setup_logging"]
