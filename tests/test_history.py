"""Unit tests for the history lifecycle manager and its JSON repository."""
import json
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.application.errors import PersistenceFailure
from src.application.history import HistoryLifecycleManager
from src.domain.models import AssessmentResult, Condition, HistoryEntry, UrgencyLevel
from src.infrastructure.storage.history_repository import JsonHistoryRepository


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self):
        self.current = datetime(2026, 1, 9, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(minutes=1)
        return self.current


@pytest.fixture
def temp_storage():
    """Create a temporary storage file for testing."""
    with tempfile.NamedTemporaryFile(mode='w', delete=False, suffix='.json') as f:
        temp_path = f.name

    yield temp_path

    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def manager(temp_storage):
    return HistoryLifecycleManager(JsonHistoryRepository(temp_storage), clock=StepClock())


def make_result(urgency=UrgencyLevel.NON_URGENT):
    return AssessmentResult(
        possible_conditions=[
            Condition(name="Common cold", description="Viral infection", likelihood="High"),
            Condition(name="Allergy", description="Seasonal allergy", likelihood="Low"),
        ],
        recommendations=["Rest", "Stay hydrated"],
        urgency_level=urgency,
    )


def assert_cured_invariant(entry):
    assert entry.is_cured == (entry.cured_at is not None)


class TestHistoryEntryModel:
    def test_cured_without_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            HistoryEntry(
                id="1", user_id="u", symptoms_text="x", urgency_level="Urgent",
                created_at=datetime.now(timezone.utc), is_cured=True,
            )

    def test_timestamp_without_cured_rejected(self):
        with pytest.raises(ValidationError):
            HistoryEntry(
                id="1", user_id="u", symptoms_text="x", urgency_level="Urgent",
                created_at=datetime.now(timezone.utc), cured_at=datetime.now(timezone.utc),
            )


class TestCreateEntry:
    def test_create_defaults(self, manager):
        entry = manager.create_entry("user-1", "sore throat | two days", make_result())
        assert entry.user_id == "user-1"
        assert entry.is_cured is False
        assert entry.cured_at is None
        assert [c.name for c in entry.possible_conditions] == ["Common cold", "Allergy"]

    def test_create_persists_to_file(self, manager, temp_storage):
        entry = manager.create_entry("user-1", "headache", make_result())
        with open(temp_storage) as f:
            rows = json.load(f)
        assert rows[entry.id]["symptoms_text"] == "headache"
        assert rows[entry.id]["is_cured"] is False

    def test_invalid_entry_is_persistence_failure(self, manager):
        with pytest.raises(PersistenceFailure):
            manager.create_entry(None, "headache", make_result())

    def test_clock_failure_is_persistence_failure(self, temp_storage):
        def broken_clock():
            raise RuntimeError("clock unavailable")

        manager = HistoryLifecycleManager(JsonHistoryRepository(temp_storage), clock=broken_clock)
        with pytest.raises(PersistenceFailure):
            manager.create_entry("user-1", "headache", make_result())
        assert manager.list_recent("user-1") == []

    def test_new_entry_listed_first(self, manager):
        manager.create_entry("user-1", "older", make_result())
        newest = manager.create_entry("user-1", "newer", make_result())
        recent = manager.list_recent("user-1", limit=1)
        assert [e.id for e in recent] == [newest.id]

    def test_same_timestamp_newest_first(self, temp_storage):
        fixed = datetime(2026, 1, 9, tzinfo=timezone.utc)
        manager = HistoryLifecycleManager(JsonHistoryRepository(temp_storage), clock=lambda: fixed)
        manager.create_entry("user-1", "first", make_result())
        second = manager.create_entry("user-1", "second", make_result())
        assert manager.list_recent("user-1", limit=5)[0].id == second.id

    def test_repository_failure_wrapped(self, manager):
        class BrokenRepo:
            def add(self, entry):
                raise OSError("disk full")

        manager.repository = BrokenRepo()
        with pytest.raises(PersistenceFailure):
            manager.create_entry("user-1", "headache", make_result())


class TestToggleCured:
    def test_mark_cured_sets_timestamp(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        cured = manager.toggle_cured("user-1", entry.id, True)
        assert cured.is_cured is True
        assert cured.cured_at is not None
        assert_cured_invariant(cured)

    def test_mark_uncured_clears_timestamp(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        manager.toggle_cured("user-1", entry.id, True)
        uncured = manager.toggle_cured("user-1", entry.id, False)
        assert uncured.is_cured is False
        assert uncured.cured_at is None
        assert_cured_invariant(uncured)

    def test_toggle_is_idempotent(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        first = manager.toggle_cured("user-1", entry.id, True)
        second = manager.toggle_cured("user-1", entry.id, True)
        stored = manager.get_entry("user-1", entry.id)
        assert first == second == stored
        assert_cured_invariant(stored)

    def test_toggle_persists(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        manager.toggle_cured("user-1", entry.id, True)
        stored = manager.list_recent("user-1")[0]
        assert stored.is_cured is True
        assert_cured_invariant(stored)

    def test_unknown_entry_fails(self, manager):
        with pytest.raises(PersistenceFailure):
            manager.toggle_cured("user-1", "missing", True)

    def test_other_users_entry_not_visible(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        with pytest.raises(PersistenceFailure):
            manager.toggle_cured("user-2", entry.id, True)
        assert manager.get_entry("user-1", entry.id).is_cured is False


class TestDeleteAndList:
    def test_delete_removes_entry(self, manager):
        keep = manager.create_entry("user-1", "keep", make_result())
        drop = manager.create_entry("user-1", "drop", make_result())
        manager.delete_entry("user-1", drop.id)
        assert [e.id for e in manager.list_recent("user-1")] == [keep.id]

    def test_delete_missing_fails(self, manager):
        with pytest.raises(PersistenceFailure):
            manager.delete_entry("user-1", "missing")

    def test_delete_other_users_entry_fails(self, manager):
        entry = manager.create_entry("user-1", "cough", make_result())
        with pytest.raises(PersistenceFailure):
            manager.delete_entry("user-2", entry.id)
        assert len(manager.list_recent("user-1")) == 1

    def test_list_scoped_to_user(self, manager):
        manager.create_entry("user-1", "mine", make_result())
        manager.create_entry("user-2", "theirs", make_result())
        assert [e.symptoms_text for e in manager.list_recent("user-1")] == ["mine"]

    def test_list_limit_and_order(self, manager):
        for i in range(25):
            manager.create_entry("user-1", f"entry {i}", make_result())
        recent = manager.list_recent("user-1")
        assert len(recent) == 20
        assert recent[0].symptoms_text == "entry 24"
        assert all(a.created_at >= b.created_at for a, b in zip(recent, recent[1:]))
        assert len(manager.list_recent("user-1", limit=10)) == 10
