"""API routers."""

from bookmatch.routers import reconciliation, transfers

__all__ = ["reconciliation", "transfers"]
