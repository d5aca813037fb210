"""Route group exports."""

from . import health, jobs, optimization

__all__ = ["health", "jobs", "optimization"]
