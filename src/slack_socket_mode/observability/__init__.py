"""Observability instruments for the Socket Mode client."""

from . import metrics

__all__ = ["metrics"]
