"""Unit tests for TimeStampedModel and BaseModel.

Uses concrete test models created via Django's SchemaEditor so we can
exercise the abstract classes against a real database.
"""

from __future__ import annotations

import uuid

import pytest
from freezegun import freeze_time

from django.db import connection, models

from modules.core.models import BaseModel, TimeStampedModel

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Concrete models for testing (abstract models can't be instantiated)
# ---------------------------------------------------------------------------


class ConcreteTimeStampedModel(TimeStampedModel):
    label = models.CharField(max_length=100)

    class Meta(TimeStampedModel.Meta):
        app_label = "core"
        db_table = "test_concrete_timestamped"


class ConcreteBaseModel(BaseModel):
    name = models.CharField(max_length=100)

    class Meta(BaseModel.Meta):
        app_label = "core"
        db_table = "test_concrete_base"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def _test_tables(django_db_setup, django_db_blocker):
    """Create DB tables for concrete test models (idempotent for --reuse-db)."""
    with django_db_blocker.unblock():
        with connection.schema_editor() as editor:
            existing = connection.introspection.table_names()
            if ConcreteTimeStampedModel._meta.db_table not in existing:
                editor.create_model(ConcreteTimeStampedModel)
            if ConcreteBaseModel._meta.db_table not in existing:
                editor.create_model(ConcreteBaseModel)


@pytest.fixture(autouse=True)
def _use_test_tables(_test_tables):
    """Ensure test tables exist for every test in this module."""


# ---------------------------------------------------------------------------
# TimeStampedModel tests
# ---------------------------------------------------------------------------


class TestTimeStampedModel:
    """Numeric PK plus timestamp bookkeeping."""

    def test_id_is_sequential_integer(self):
        a = ConcreteTimeStampedModel.objects.create(label="a")
        b = ConcreteTimeStampedModel.objects.create(label="b")
        assert isinstance(a.id, int)
        assert b.id > a.id

    def test_timestamps_set_on_create(self):
        with freeze_time("2026-03-01 08:00:00"):
            obj = ConcreteTimeStampedModel.objects.create(label="test")
        assert obj.created_at.isoformat() == "2026-03-01T08:00:00+00:00"
        assert obj.updated_at == obj.created_at

    def test_save_with_update_fields_includes_updated_at(self):
        """The save() guard must inject updated_at into update_fields."""
        with freeze_time("2026-03-01 08:00:00"):
            obj = ConcreteTimeStampedModel.objects.create(label="original")
        with freeze_time("2026-03-01 09:30:00"):
            obj.label = "modified"
            obj.save(update_fields=["label"])
        obj.refresh_from_db()
        assert obj.label == "modified"
        assert obj.updated_at.isoformat() == "2026-03-01T09:30:00+00:00"
        assert obj.created_at.isoformat() == "2026-03-01T08:00:00+00:00"

    def test_update_fields_guard_does_not_duplicate(self):
        with freeze_time("2026-03-01 08:00:00"):
            obj = ConcreteTimeStampedModel.objects.create(label="original")
        with freeze_time("2026-03-02 08:00:00"):
            obj.save(update_fields=["label", "updated_at"])
        obj.refresh_from_db()
        assert obj.updated_at.isoformat() == "2026-03-02T08:00:00+00:00"


# ---------------------------------------------------------------------------
# BaseModel tests
# ---------------------------------------------------------------------------


class TestBaseModel:
    """Tests for UUIDv7 PK and timestamp behaviour."""

    def test_id_is_uuid(self):
        obj = ConcreteBaseModel.objects.create(name="test")
        assert isinstance(obj.id, uuid.UUID)

    def test_id_is_uuid_version_7(self):
        obj = ConcreteBaseModel.objects.create(name="test")
        # UUIDv7 has version bits set to 7
        assert obj.id.version == 7

    def test_ids_are_unique(self):
        a = ConcreteBaseModel.objects.create(name="a")
        b = ConcreteBaseModel.objects.create(name="b")
        assert a.id != b.id

    def test_ids_are_time_ordered(self):
        """UUIDv7 encodes timestamp, so sequential creates yield ordered IDs."""
        a = ConcreteBaseModel.objects.create(name="first")
        b = ConcreteBaseModel.objects.create(name="second")
        assert str(a.id) < str(b.id)

    def test_created_at_does_not_change_on_save(self):
        obj = ConcreteBaseModel.objects.create(name="original")
        original_created = obj.created_at
        obj.name = "modified"
        obj.save()
        obj.refresh_from_db()
        assert obj.created_at == original_created

    def test_id_is_not_editable(self):
        field = ConcreteBaseModel._meta.get_field("id")
        assert field.editable is False
