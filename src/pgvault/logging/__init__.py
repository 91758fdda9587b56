"""pgvault Logging Module

This module provides centralized logging configuration for the pgvault library.
It supports both file and console logging with rotation capabilities.
"""

from .logger_setup import LoggingConfig, configure_logging, get_logger

__all__ = ["LoggingConfig", "configure_logging", "get_logger"]
