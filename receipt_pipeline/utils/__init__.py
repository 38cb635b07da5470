"""
Utility Module for the Receipt Extraction Pipeline.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Structured exceptions
    - Common helpers
"""

from .logger import setup_logger, get_logger, setup_logger_from_config
from .helpers import merge_dicts, format_file_size, clamp, safe_mean

__all__ = [
    'setup_logger',
    'get_logger',
    'setup_logger_from_config',
    'merge_dicts',
    'format_file_size',
    'clamp',
    'safe_mean'
]
