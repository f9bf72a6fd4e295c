"""
Core utilities and configuration for AI Office.

This package provides core functionality including logging configuration,
settings and monitoring setup shared by the worker and the API server.
"""

from ai_office.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
