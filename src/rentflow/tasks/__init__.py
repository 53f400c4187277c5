"""Externally triggered maintenance tasks."""

from rentflow.tasks.maintenance import run_maintenance

__all__ = ["run_maintenance"]
