"""Lifecycle coordination."""

from .coordinator import ActionResult, LifecycleCoordinator, UninstallConfirmation

__all__ = ["ActionResult", "LifecycleCoordinator", "UninstallConfirmation"]
