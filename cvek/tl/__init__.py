"""Tools module (functional API)."""

from ._testing import testing

__all__ = ["testing"]
