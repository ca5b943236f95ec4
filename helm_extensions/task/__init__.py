"""Task tracking module for helm-extensions.

This module provides a simple task tracking service used to run and wait for
reconcile workers and delayed requeues.
"""

from .context import task_service_context, get_task_service
from .service import TaskService

__all__ = ["get_task_service", "task_service_context", "TaskService"]
