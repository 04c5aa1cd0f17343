"""
Tests for the local practice progress file.

Run with: pytest test_progress.py -v
"""

import json

import pytest

from progress import MAX_WORDS_KEPT, RECENT_WORD_WINDOW, ProgressData, ProgressTracker


@pytest.fixture
def tracker(tmp_path):
    return ProgressTracker(tmp_path / "progress.json")


class TestLoadSave:

    def test_missing_file_is_empty_progress(self, tracker):
        assert tracker.load() == ProgressData()

    def test_unreadable_file_is_empty_progress(self, tracker):
        tracker.path.write_text("{not json")
        assert tracker.load() == ProgressData()

    def test_round_trip_through_file(self, tracker):
        tracker.save(ProgressData(games_played=3, games_won=1, words_practiced=["cat"]))
        data = json.loads(tracker.path.read_text())

        assert data["games_played"] == 3
        assert tracker.load().words_practiced == ["cat"]

    def test_creates_parent_directories(self, tmp_path):
        tracker = ProgressTracker(tmp_path / "a" / "b" / "progress.json")
        tracker.record_game_played()
        assert tracker.path.exists()

    def test_partial_file_uses_defaults(self, tracker):
        tracker.path.write_text(json.dumps({"games_won": 2}))
        progress = tracker.load()
        assert progress.games_won == 2
        assert progress.games_played == 0

    def test_clear(self, tracker):
        tracker.record_game_played()
        tracker.clear()
        assert not tracker.path.exists()
        tracker.clear()


class TestCounters:

    def test_games_played(self, tracker):
        tracker.record_game_played()
        progress = tracker.record_game_played()
        assert progress.games_played == 2
        assert progress.last_played is not None
        assert tracker.load().games_played == 2

    def test_games_won(self, tracker):
        assert tracker.record_game_won().games_won == 1


class TestWordsPracticed:

    def test_new_word_added(self, tracker):
        assert tracker.record_word_practiced("cat")
        assert tracker.load().words_practiced == ["cat"]

    def test_recent_word_not_repeated(self, tracker):
        tracker.record_word_practiced("cat")
        assert not tracker.record_word_practiced("cat")
        assert tracker.load().words_practiced == ["cat"]

    def test_word_added_again_once_out_of_window(self, tracker):
        tracker.save(ProgressData(words_practiced=["cat"] + [f"w{i}" for i in range(RECENT_WORD_WINDOW)]))
        assert tracker.record_word_practiced("cat")
        assert tracker.load().words_practiced[-1] == "cat"

    def test_list_is_capped(self, tracker):
        tracker.save(ProgressData(words_practiced=[f"w{i}" for i in range(MAX_WORDS_KEPT)]))
        tracker.record_word_practiced("cat")

        words = tracker.load().words_practiced
        assert len(words) == MAX_WORDS_KEPT
        assert words[0] == "w1"
        assert words[-1] == "cat"
