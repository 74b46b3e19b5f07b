"""Celery tasks for the workflow module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import DatabaseError

from modules.workflow.repositories.django_repository import WorkflowDjangoRepository

logger = structlog.get_logger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    max_retries=5,
)
def rederive_order_status(self, order_id: int) -> str:
    """Recompute and cache the derived status of one order.

    Used when the post-commit recomputation of a bulk request failed, and
    by operators to repair a stale order.  Returns the derived status key.
    """
    from modules.workflow.services import OrderStatusService

    service = OrderStatusService.from_repository(WorkflowDjangoRepository())
    change = service.refresh(order_id)
    logger.info(
        "workflow.rederive_task_completed",
        order_id=order_id,
        derived_status=change.derived.key,
        attempt=self.request.retries,
    )
    return change.derived.key
