"""Top-level package for the FTTH Rebuild Helper backend."""

from .api.app_factory import create_app
from .pipelines import ReconciliationSession

__all__ = ["create_app", "ReconciliationSession"]
