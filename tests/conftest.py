import io
from datetime import timedelta

import jwt
import pytest
from django.conf import settings
from django.core.cache import cache
from django.core.management import call_command
from django.utils import timezone

from rest_framework.test import APIClient

from modules.core.actors import ActorContext
from modules.core.authentication import Actor
from modules.orders.models import Order, OrderItem
from modules.workflow.constants import (
    PERMISSION_ITEM_CANCEL,
    PERMISSION_ITEM_MASTER_LIST,
    PERMISSION_ITEM_REFUND,
    PERMISSION_ITEM_STATUS_CHANGE,
    ActorRole,
)
from modules.workflow.models import ItemStatus

BASE_PERMISSIONS = [PERMISSION_ITEM_STATUS_CHANGE, PERMISSION_ITEM_MASTER_LIST]
ALL_PERMISSIONS = BASE_PERMISSIONS + [PERMISSION_ITEM_CANCEL, PERMISSION_ITEM_REFUND]


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters and workflow snapshots never leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Workflow configuration
# ---------------------------------------------------------------------------


@pytest.fixture()
def statuses():
    """Seed the default catalog and rules; return ``{key: ItemStatus}``."""
    call_command("seed_workflow", stdout=io.StringIO())
    return {status.key: status for status in ItemStatus.objects.all()}


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_actor():
    def _make(role=ActorRole.SUPER_ADMIN, permissions=None, actor_id=7):
        return ActorContext(
            actor_id=actor_id,
            role=str(role),
            permissions=frozenset(ALL_PERMISSIONS if permissions is None else permissions),
        )

    return _make


@pytest.fixture()
def actor_client():
    """Factory for an APIClient force-authenticated as a back-office actor."""

    def _make(role=ActorRole.SUPER_ADMIN, permissions=None, actor_id=7):
        client = APIClient()
        user = Actor(
            {
                "sub": str(actor_id),
                "role": str(role),
                "permissions": ALL_PERMISSIONS if permissions is None else permissions,
            }
        )
        client.force_authenticate(user=user)
        return client

    return _make


@pytest.fixture()
def admin_client(actor_client):
    return actor_client(ActorRole.SUPER_ADMIN)


@pytest.fixture()
def buyer_client(actor_client):
    return actor_client(ActorRole.BUYER, BASE_PERMISSIONS)


@pytest.fixture()
def make_token():
    """Sign an actor JWT the way the identity service does."""

    def _make(sub="7", role=ActorRole.BUYER, permissions=None, expires_in=300, **extra):
        claims = {
            "sub": sub,
            "role": str(role),
            "permissions": BASE_PERMISSIONS if permissions is None else permissions,
            "exp": timezone.now() + timedelta(seconds=expires_in),
            **extra,
        }
        return jwt.encode(
            claims,
            settings.WORKFLOW_JWT_SECRET,
            algorithm=settings.WORKFLOW_JWT_ALGORITHM,
        )

    return _make


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_order(statuses):
    """Create an order with one item per status key (``None`` = unset)."""

    def _make(*status_keys, customer_name="Test customer", tracking_number=None):
        order = Order.objects.create(customer_name=customer_name)
        for index, key in enumerate(status_keys, start=1):
            OrderItem.objects.create(
                order=order,
                product_reference=f"SKU-{index:03d}",
                product_name=f"Product {index}",
                quantity=1,
                tracking_number=tracking_number,
                current_status=statuses[key] if key is not None else None,
                status_updated_at=timezone.now() if key is not None else None,
            )
        return order

    return _make
