"""Utility subpackage for reusable helpers (logging, constants, etc.)."""

from .logger import get_logger

__all__ = ["get_logger"]
