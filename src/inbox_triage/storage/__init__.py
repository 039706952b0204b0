"""Storage for the working email collection."""

from .memory import InMemoryEmailStore

__all__ = ["InMemoryEmailStore"]
