"""Common middleware for passhub."""

from .observability import StructlogContextMiddleware

__all__ = ["StructlogContextMiddleware"]
