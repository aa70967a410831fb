"""Utility modules for shipwright."""

from .errors import ErrorInfo, format_error, is_debug_mode, set_debug_mode

__all__ = ["ErrorInfo", "format_error", "is_debug_mode", "set_debug_mode"]
