"""Session orchestration."""

from .session import VIEWS, ReconciliationSession

__all__ = ["VIEWS", "ReconciliationSession"]
