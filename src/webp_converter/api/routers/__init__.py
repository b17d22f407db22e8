from . import health, jobs

__all__ = ["health", "jobs"]
