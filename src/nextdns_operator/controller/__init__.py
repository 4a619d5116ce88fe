"""Work queues and the manager that drives the reconcilers."""

from __future__ import annotations

from .manager import Controller, Manager
from .workqueue import WorkQueue

__all__ = ["Controller", "Manager", "WorkQueue"]
