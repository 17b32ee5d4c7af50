"""Input preparation for the score tests."""

from .design import as_kernel, as_kernel_list, as_vector, ensure_intercept, has_intercept

__all__ = [
    "as_kernel",
    "as_kernel_list",
    "as_vector",
    "ensure_intercept",
    "has_intercept",
]
