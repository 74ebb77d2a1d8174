"""
Structured logging for solwatch.

JSON logs with timestamp, event_type and module name.
Use get_logger() in every module for aggregation-friendly output.
"""

from solwatch.solwatch_logging.logger import configure_structlog, get_logger, short

__all__ = ["configure_structlog", "get_logger", "short"]
