"""
Utility modules for the clinic assistant application.

This package contains shared utility functions and helpers used across
the application, including datetime utilities, address normalization,
message chunking, and database query helpers.
"""

from utils.query_helpers import build_upsert

__all__ = ['build_upsert']
