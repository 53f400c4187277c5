"""Observability helpers."""

from rentflow.observability.metrics import metrics

__all__ = ["metrics"]
