import time
from typing import Any, Dict

import structlog
from django.core.cache import cache
from django.db import DatabaseError
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.workflow.models import ItemStatus, TransitionRule

logger = structlog.get_logger()


def health_check(request: HttpRequest) -> JsonResponse:
    """Liveness check of the database, the workflow catalog and the cache."""
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    # Check database through the workflow configuration tables: an empty
    # catalog means the service cannot move any item yet.
    try:
        start = time.monotonic()
        status_count = ItemStatus.objects.filter(is_active=True).count()
        rule_count = TransitionRule.objects.filter(can_transition=True).count()
        services["database"] = {
            "status": "up",
            "response_time_ms": round((time.monotonic() - start) * 1000, 2),
            "workflow_statuses": status_count,
            "workflow_rules": rule_count,
        }
    except DatabaseError:
        services["database"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check_db_failure")

    # Check cache (Redis)
    try:
        start = time.monotonic()
        cache.set("_health_check", "ok", 10)
        result = cache.get("_health_check")
        if result != "ok":
            raise ConnectionError("Cache read failed")
        services["cache"] = {
            "status": "up",
            "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        }
    except Exception:
        services["cache"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check_cache_failure")

    status_code = 200 if overall_healthy else 503

    logger.info(
        "health_check_completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status_code,
    )


class CurrentActorView(APIView):
    """Echo the authenticated actor as the workflow core sees it.

    * No token  -> 401
    * Bad token -> 401
    * Valid JWT -> 200 with id, role and permission keys
    """

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        actor = request.user.context
        return Response(
            {
                "actor_id": actor.actor_id,
                "role": actor.role,
                "permissions": sorted(actor.permissions),
            }
        )
