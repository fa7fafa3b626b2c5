"""
Logs module for the Logbook server - log and entry operations.
"""

from .service import MAX_LOG_NAME_LENGTH, LogService, LogView

__all__ = ["LogService", "LogView", "MAX_LOG_NAME_LENGTH"]
