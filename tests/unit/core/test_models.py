"""Unit tests for BaseModel and AppendOnlyModel.

Uses concrete test models created via Django's SchemaEditor so we can
exercise the abstract classes against a real database.
"""

from __future__ import annotations

import uuid

import pytest
from freezegun import freeze_time

from django.db import connection, models

from modules.core.models import AppendOnlyModel, BaseModel, ImmutableRecordError

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Concrete models for testing (abstract models can't be instantiated)
# ---------------------------------------------------------------------------


class ConcreteBaseModel(BaseModel):
    name = models.CharField(max_length=100)

    class Meta(BaseModel.Meta):
        app_label = "core"
        db_table = "test_concrete_base"


class ConcreteLedgerEntry(AppendOnlyModel):
    note = models.CharField(max_length=100)

    class Meta(AppendOnlyModel.Meta):
        app_label = "core"
        db_table = "test_concrete_ledger"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def _test_tables(django_db_setup, django_db_blocker):
    """Create DB tables for concrete test models (idempotent for --reuse-db)."""
    with django_db_blocker.unblock():
        with connection.schema_editor() as editor:
            existing = connection.introspection.table_names()
            if ConcreteBaseModel._meta.db_table not in existing:
                editor.create_model(ConcreteBaseModel)
            if ConcreteLedgerEntry._meta.db_table not in existing:
                editor.create_model(ConcreteLedgerEntry)


@pytest.fixture(autouse=True)
def _use_test_tables(_test_tables):
    """Ensure test tables exist for every test in this module."""


# ---------------------------------------------------------------------------
# BaseModel tests
# ---------------------------------------------------------------------------


class TestBaseModel:
    """Tests for UUIDv7 PK and timestamp behaviour."""

    def test_id_is_uuid_version_7(self):
        obj = ConcreteBaseModel.objects.create(name="test")
        assert isinstance(obj.id, uuid.UUID)
        assert obj.id.version == 7

    def test_ids_are_time_ordered(self):
        """UUIDv7 encodes timestamp, so sequential creates yield ordered IDs."""
        a = ConcreteBaseModel.objects.create(name="first")
        b = ConcreteBaseModel.objects.create(name="second")
        assert str(a.id) < str(b.id)

    def test_created_at_does_not_change_on_save(self):
        with freeze_time("2026-05-04 10:00:00"):
            obj = ConcreteBaseModel.objects.create(name="original")
        original_created = obj.created_at

        with freeze_time("2026-05-04 11:00:00"):
            obj.name = "modified"
            obj.save()
        obj.refresh_from_db()

        assert obj.created_at == original_created

    def test_save_with_update_fields_includes_updated_at(self):
        """The save() guard must inject updated_at into update_fields."""
        with freeze_time("2026-05-04 10:00:00"):
            obj = ConcreteBaseModel.objects.create(name="original")
        original_updated = obj.updated_at

        with freeze_time("2026-05-04 11:00:00"):
            obj.name = "modified"
            obj.save(update_fields=["name"])
        obj.refresh_from_db()

        assert obj.updated_at > original_updated

    def test_id_is_not_editable(self):
        field = ConcreteBaseModel._meta.get_field("id")
        assert field.editable is False


# ---------------------------------------------------------------------------
# AppendOnlyModel tests
# ---------------------------------------------------------------------------


class TestAppendOnlyModel:
    def test_insert_is_allowed(self):
        entry = ConcreteLedgerEntry.objects.create(note="first")
        assert ConcreteLedgerEntry.objects.filter(pk=entry.pk).exists()

    def test_save_after_insert_raises(self):
        entry = ConcreteLedgerEntry.objects.create(note="first")
        entry.note = "rewritten"

        with pytest.raises(ImmutableRecordError, match="append-only"):
            entry.save()

        entry.refresh_from_db()
        assert entry.note == "first"

    def test_instance_delete_raises(self):
        entry = ConcreteLedgerEntry.objects.create(note="first")

        with pytest.raises(ImmutableRecordError):
            entry.delete()

        assert ConcreteLedgerEntry.objects.filter(pk=entry.pk).exists()

    def test_queryset_update_raises(self):
        ConcreteLedgerEntry.objects.create(note="first")

        with pytest.raises(ImmutableRecordError):
            ConcreteLedgerEntry.objects.filter(note="first").update(note="x")

    def test_queryset_delete_raises(self):
        ConcreteLedgerEntry.objects.create(note="first")

        with pytest.raises(ImmutableRecordError):
            ConcreteLedgerEntry.objects.all().delete()
