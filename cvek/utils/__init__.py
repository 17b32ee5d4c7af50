"""Utilities for cvek."""

from .logging import setup_logging, teardown_logging

__all__ = ["setup_logging", "teardown_logging"]
