"""Workflow URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.workflow.views import OrderItemWorkflowViewSet

router = DefaultRouter(trailing_slash=True)
router.register("order-items", OrderItemWorkflowViewSet, basename="order-item")

urlpatterns = router.urls
