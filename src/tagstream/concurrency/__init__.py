"""Concurrency helpers for tagstream."""

from .cancellation import guard
from .pool import ConcurrentDetailFetcher, DetailOutcome

__all__ = [
    "ConcurrentDetailFetcher",
    "DetailOutcome",
    "guard",
]
