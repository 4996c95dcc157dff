"""Tests for sync result formatting."""

from notesync.sync.models import SyncOutcome, SyncStatus
from notesync.sync.reporter import (
    format_entity_hashes,
    format_sync_outcome,
    outcome_to_json,
)


def _make_outcome(**overrides) -> SyncOutcome:
    defaults = {
        "status": SyncStatus.SUCCESS,
        "log": ["Logged in to http://peer/api", "Pushed 2 changes"],
        "pulled": 3,
        "pushed": 2,
        "conflicts": 1,
        "started_at": "2026-03-01T12:00:00.000Z",
        "completed_at": "2026-03-01T12:00:02.000Z",
    }
    defaults.update(overrides)
    return SyncOutcome(**defaults)


class TestFormatSyncOutcome:
    def test_basic_summary(self):
        text = format_sync_outcome(_make_outcome())
        lines = text.splitlines()

        assert lines[0] == "Sync success"
        assert "Pulled 3, pushed 2, 1 conflicts" in text
        assert "Log:" not in text

    def test_status_words_are_spaced(self):
        text = format_sync_outcome(_make_outcome(status=SyncStatus.DB_NOT_UP_TO_DATE))
        assert text.startswith("Sync db not up to date")

    def test_error_line(self):
        text = format_sync_outcome(
            _make_outcome(status=SyncStatus.FAILED, error="refused")
        )
        assert "Error: refused" in text

    def test_verbose_includes_log(self):
        text = format_sync_outcome(_make_outcome(), verbose=True)
        assert "Log:" in text
        assert "  Pushed 2 changes" in text


class TestFormatEntityHashes:
    def test_sorted_table(self):
        text = format_entity_hashes(
            {"notes_tree": {"b": "h2", "a": "h1"}, "notes": {}}, 12
        )
        assert text.splitlines() == [
            "Max entity change id: 12",
            "notes: 0 sectors",
            "notes_tree: 2 sectors",
            "  a  h1",
            "  b  h2",
        ]


class TestOutcomeToJson:
    def test_structure(self):
        result = outcome_to_json(_make_outcome())

        assert result["status"] == "success"
        assert result["success"] is True
        assert result["counts"] == {"pulled": 3, "pushed": 2, "conflicts": 1}
        assert len(result["log"]) == 2
        assert "error" not in result

    def test_error_included(self):
        result = outcome_to_json(_make_outcome(status=SyncStatus.FAILED, error="x"))
        assert result["success"] is False
        assert result["error"] == "x"
