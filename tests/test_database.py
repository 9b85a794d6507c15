"""Unit tests for database module."""

from datetime import datetime, timedelta, timezone

import pytest

from italianbuddy.core import ReviewScheduler
from italianbuddy.database import DEMO_USER_UUID, BuddyDatabase, to_vocabulary_user_id
from italianbuddy.errors import NotFoundError, PersistenceError

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = BuddyDatabase()
    yield database
    database.close()


class TestConversations:
    def test_save_and_fetch_history(self, db: BuddyDatabase) -> None:
        corrections = {"errors": [{"mistake": "a", "correction": "b"}]}
        saved = db.save_conversation(
            "user-1", "chat", "Io ho andato", "Si dice: sono andato.", corrections, now=NOW
        )

        history = db.get_conversation_history("user-1")

        assert len(history) == 1
        assert history[0].id == saved.id
        assert history[0].grammar_corrections == corrections
        assert history[0].created_at == NOW

    def test_history_is_chronological_and_limited(self, db: BuddyDatabase) -> None:
        for i in range(5):
            db.save_conversation(
                "user-1", "chat", f"msg {i}", f"reply {i}", now=NOW + timedelta(minutes=i)
            )

        history = db.get_conversation_history("user-1", limit=3)

        assert [turn.user_message for turn in history] == ["msg 2", "msg 3", "msg 4"]

    def test_history_filters_by_mode_and_user(self, db: BuddyDatabase) -> None:
        db.save_conversation("user-1", "chat", "a", "b", now=NOW)
        db.save_conversation("user-1", "scenario", "c", "d", now=NOW)
        db.save_conversation("user-2", "chat", "e", "f", now=NOW)

        history = db.get_conversation_history("user-1", mode="chat")

        assert [turn.user_message for turn in history] == ["a"]
        assert history[0].grammar_corrections is None

    def test_closed_connection_raises_persistence_error(self) -> None:
        database = BuddyDatabase()
        database.close()

        with pytest.raises(PersistenceError):
            database.save_conversation("user-1", "chat", "a", "b")


class TestVocabulary:
    def test_demo_user_mapping(self) -> None:
        assert to_vocabulary_user_id("demo-user") == DEMO_USER_UUID
        assert to_vocabulary_user_id("abc") == "abc"

    def test_new_word_is_due_immediately(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("demo-user", "casa", "house", now=NOW)

        assert item.owner_id == DEMO_USER_UUID
        assert item.correct_streak == 0
        due = db.get_vocabulary_due("demo-user", now=NOW)
        assert [word.id for word in due] == [item.id]

    def test_due_query_filters_orders_and_caps(self, db: BuddyDatabase) -> None:
        for i in range(25):
            db.add_vocabulary_word("user-1", f"due-{i}", "x", now=NOW - timedelta(hours=i))
        for i in range(3):
            db.add_vocabulary_word("user-1", f"later-{i}", "x", now=NOW + timedelta(hours=i + 1))
        db.add_vocabulary_word("user-2", "other", "x", now=NOW - timedelta(days=3))

        due = db.get_vocabulary_due("user-1", now=NOW)

        assert len(due) == 20
        assert all(word.next_review_at <= NOW for word in due)
        assert all(word.owner_id == "user-1" for word in due)
        dates = [word.next_review_at for word in due]
        assert dates == sorted(dates)
        assert due[0].term == "due-24"

    def test_review_updates_streak_and_dates(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("user-1", "casa", "house", now=NOW - timedelta(days=1))

        first = db.update_vocabulary_review(item.id, True, now=NOW)
        second = db.update_vocabulary_review(item.id, True, now=NOW + timedelta(days=1))
        stored = db.get_vocabulary_item(item.id)

        assert first.correct_streak == 1
        assert first.next_review_at == NOW + timedelta(days=1)
        assert second.correct_streak == 2
        assert second.next_review_at == NOW + timedelta(days=4)
        assert stored == second
        assert stored.term == "casa"

    def test_incorrect_review_resets(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("user-1", "casa", "house", now=NOW)
        for day in range(3):
            db.update_vocabulary_review(item.id, True, now=NOW + timedelta(days=day))

        missed = db.update_vocabulary_review(item.id, False, now=NOW + timedelta(days=10))

        assert missed.correct_streak == 0
        assert missed.next_review_at == NOW + timedelta(days=11)

    def test_reviewed_word_leaves_due_list(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("user-1", "casa", "house", now=NOW)
        db.update_vocabulary_review(item.id, True, now=NOW)

        assert db.get_vocabulary_due("user-1", now=NOW) == []
        assert len(db.get_vocabulary_due("user-1", now=NOW + timedelta(days=1))) == 1

    def test_review_with_custom_scheduler(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("user-1", "casa", "house", now=NOW)

        updated = db.update_vocabulary_review(
            item.id, True, now=NOW, scheduler=ReviewScheduler(intervals=[2, 4])
        )

        assert updated.next_review_at == NOW + timedelta(days=2)

    def test_review_unknown_word(self, db: BuddyDatabase) -> None:
        with pytest.raises(NotFoundError):
            db.update_vocabulary_review("missing", True, now=NOW)

        # The failed transaction was rolled back and the connection still works.
        db.add_vocabulary_word("user-1", "casa", "house", now=NOW)
        assert db.count_vocabulary("user-1") == 1

    def test_naive_timestamps_are_utc(self, db: BuddyDatabase) -> None:
        item = db.add_vocabulary_word("user-1", "casa", "house", now=NOW)

        stored = db.get_vocabulary_item(item.id)

        assert stored.next_review_at.tzinfo is not None
        assert stored.next_review_at == NOW
