"""
Helper Utilities Module.

Small, generic functions shared by the pipeline stages.

Functions:
    - merge_dicts: Deep-merge configuration sections with caller overrides
    - format_file_size: Human-readable byte counts for messages
    - clamp: Bound a number to an interval
    - safe_mean: Mean of a sequence that tolerates empty input
"""

from typing import Iterable


def merge_dicts(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries, with override taking precedence.

    Keys whose override value is None are ignored, so callers can pass
    sparse overrides without clobbering configured values.

    Args:
        base: Base dictionary.
        override: Dictionary with values to override.

    Returns:
        Merged dictionary.

    Example:
        >>> merge_dicts({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}, "a": None})
        {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result = dict(base)

    for key, value in (override or {}).items():
        if value is None:
            continue
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: File size in bytes.

    Returns:
        Human-readable file size string.

    Example:
        >>> format_file_size(1536)
        '1.5 KB'
        >>> format_file_size(1048576)
        '1.0 MB'
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Bound value to [lower, upper]."""
    return max(lower, min(upper, value))


def safe_mean(values: Iterable[float], default: float = 0.0) -> float:
    """
    Arithmetic mean that returns a default for an empty input.

    Args:
        values: Numbers to average.
        default: Value returned when values is empty.

    Returns:
        Mean of values, or default.
    """
    values = list(values)
    if not values:
        return default
    return sum(values) / len(values)
