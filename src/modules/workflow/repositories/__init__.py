"""Workflow repositories package."""

from modules.workflow.repositories.django_repository import WorkflowDjangoRepository
from modules.workflow.repositories.interfaces import (
    HistoryEntry,
    IWorkflowRepository,
    StatusUpdate,
)

__all__ = [
    "HistoryEntry",
    "IWorkflowRepository",
    "StatusUpdate",
    "WorkflowDjangoRepository",
]
