"""Unit tests for patient context assembly."""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from src.application.context import CURED_HEADER, UNCURED_HEADER, ContextAssembler
from src.application.history import HistoryLifecycleManager
from src.domain.models import AssessmentResult, Condition, UserProfile, UrgencyLevel
from src.infrastructure.storage.history_repository import JsonHistoryRepository
from src.infrastructure.storage.profile_repository import JsonProfileRepository


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def history(temp_dir):
    ticks = iter(datetime(2026, 1, 9, tzinfo=timezone.utc) + timedelta(hours=i) for i in range(1000))
    return HistoryLifecycleManager(
        JsonHistoryRepository(os.path.join(temp_dir, "history.json")), clock=lambda: next(ticks)
    )


@pytest.fixture
def profiles(temp_dir):
    return JsonProfileRepository(os.path.join(temp_dir, "profiles.json"))


def make_result(urgency=UrgencyLevel.NON_URGENT):
    return AssessmentResult(
        possible_conditions=[Condition(name="Migraine", description="Headache disorder", likelihood="Medium")],
        recommendations=["Rest in a dark room"],
        urgency_level=urgency,
    )


def split_blocks(rendered):
    """Return (uncured_block, cured_block) text from a rendered context."""
    uncured, cured = "", ""
    for block in rendered.split("\n\n"):
        if block.startswith(UNCURED_HEADER):
            uncured = block
        elif block.startswith(CURED_HEADER):
            cured = block
    return uncured, cured


class TestContextAssembler:
    def test_anonymous_context_is_empty(self, history, profiles):
        context = ContextAssembler(history, profiles).assemble(None)
        assert context.is_empty
        assert context.render() == ""

    def test_anonymous_keeps_uncured_note(self, history, profiles):
        context = ContextAssembler(history, profiles).assemble(None, ["back pain"])
        assert "NOT yet cured" in context.render()
        assert "back pain" in context.render()

    def test_missing_profile_is_not_an_error(self, history, profiles):
        history.create_entry("user-1", "migraine", make_result())
        context = ContextAssembler(history, profiles).assemble("user-1")
        assert context.profile is None
        assert "migraine" in context.render()

    def test_profile_rendered(self, history, profiles):
        profiles.upsert_profile("user-1", UserProfile(full_name="Sam Lee", age=34, health_issues="asthma"))
        rendered = ContextAssembler(history, profiles).assemble("user-1").render()
        assert "Sam Lee" in rendered
        assert "34 years old" in rendered
        assert "asthma" in rendered
        assert "extra caution" not in rendered

    @pytest.mark.parametrize("age", [8, 72])
    def test_age_caution_annotation(self, history, profiles, age):
        profiles.upsert_profile("user-1", UserProfile(full_name="Pat", age=age))
        context = ContextAssembler(history, profiles).assemble("user-1")
        assert context.extra_caution
        assert "extra caution" in context.render()

    def test_partition_is_exact_and_disjoint(self, history, profiles):
        a = history.create_entry("user-1", "persistent cough", make_result(UrgencyLevel.URGENT))
        b = history.create_entry("user-1", "sprained ankle", make_result())
        c = history.create_entry("user-1", "stomach ache", make_result())
        history.toggle_cured("user-1", b.id, True)

        context = ContextAssembler(history, profiles).assemble("user-1")
        assert {e.id for e in context.uncured} == {a.id, c.id}
        assert {e.id for e in context.cured} == {b.id}

        uncured_block, cured_block = split_blocks(context.render())
        assert "persistent cough" in uncured_block and "stomach ache" in uncured_block
        assert "sprained ankle" not in uncured_block
        assert "sprained ankle" in cured_block
        assert "persistent cough" not in cured_block and "stomach ache" not in cured_block
        assert "Urgency: Urgent" in uncured_block

    def test_uncuring_moves_entry_back(self, history, profiles):
        entry = history.create_entry("user-1", "rash", make_result())
        history.toggle_cured("user-1", entry.id, True)
        history.toggle_cured("user-1", entry.id, False)
        context = ContextAssembler(history, profiles).assemble("user-1")
        assert [e.id for e in context.uncured] == [entry.id]
        assert context.cured == []

    def test_only_ten_most_recent_used(self, history, profiles):
        for i in range(12):
            history.create_entry("user-1", f"episode {i}", make_result())
        context = ContextAssembler(history, profiles).assemble("user-1")
        assert len(context.uncured) == 10
        assert "episode 0 " not in context.render()
        assert context.uncured[0].symptoms_text == "episode 11"

    def test_deleted_entry_excluded(self, history, profiles):
        entry = history.create_entry("user-1", "nosebleed", make_result())
        history.delete_entry("user-1", entry.id)
        assert "nosebleed" not in ContextAssembler(history, profiles).assemble("user-1").render()

    def test_storage_failure_degrades(self, profiles):
        class BrokenHistory:
            def list_recent(self, user_id, limit):
                raise OSError("storage offline")

        class BrokenProfiles:
            def get_profile(self, user_id):
                raise OSError("storage offline")

        context = ContextAssembler(BrokenHistory(), BrokenProfiles()).assemble("user-1", ["fatigue"])
        assert context.profile is None
        assert context.uncured == [] and context.cured == []
        assert "fatigue" in context.render()
