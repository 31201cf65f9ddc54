"""Runtime metrics for the ASR bridge."""

from .metrics import Metrics

__all__ = ["Metrics"]
