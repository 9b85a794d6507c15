"""Database module for storing conversation turns and vocabulary."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import duckdb

from .core import (
    DUE_PAGE_SIZE,
    ConversationTurn,
    ReviewScheduler,
    VocabularyItem,
    utcnow,
)
from .errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

DEMO_USER = "demo-user"
DEMO_USER_UUID = "00000000-0000-0000-0000-000000000001"

VOCABULARY_COLUMNS = (
    "id, user_id, word, translation, example, correct_count, "
    "last_reviewed, next_review, created_at"
)
CONVERSATION_COLUMNS = (
    "id, user_id, mode, user_message, ai_response, grammar_corrections, created_at"
)


def to_vocabulary_user_id(user_id: str) -> str:
    """Maps the shared demo user onto its fixed UUID."""
    if user_id == DEMO_USER:
        return DEMO_USER_UUID
    return user_id


def _to_db_time(value: datetime) -> datetime:
    # Columns are naive TIMESTAMPs holding UTC.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class BuddyDatabase:
    """Manages the DuckDB database holding conversations and vocabulary.

    Every DuckDB failure surfaces as a PersistenceError.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initializes the database connection.

        Args:
            db_path: Optional path to a DuckDB file. If None, an in-memory database is used.
        """
        self.db_path = db_path or ":memory:"
        try:
            self.connection = duckdb.connect(self.db_path)
            self._create_tables()
        except duckdb.Error as e:
            raise PersistenceError(
                f"Could not open database: {e}", details={"path": self.db_path}
            ) from e

    def _create_tables(self) -> None:
        """Creates the conversations and vocabulary tables if missing."""
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS conversations (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                mode VARCHAR NOT NULL,
                user_message VARCHAR NOT NULL,
                ai_response VARCHAR NOT NULL,
                grammar_corrections VARCHAR,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS vocabulary (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                word VARCHAR NOT NULL,
                translation VARCHAR NOT NULL,
                example VARCHAR,
                correct_count INTEGER NOT NULL DEFAULT 0,
                last_reviewed TIMESTAMP NOT NULL,
                next_review TIMESTAMP NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

    def _row_to_item(self, row: tuple) -> VocabularyItem:
        return VocabularyItem(
            id=row[0],
            owner_id=row[1],
            term=row[2],
            translation=row[3],
            example=row[4],
            correct_streak=row[5] or 0,
            last_reviewed_at=_from_db_time(row[6]),
            next_review_at=_from_db_time(row[7]),
            created_at=_from_db_time(row[8]),
        )

    def _row_to_turn(self, row: tuple) -> ConversationTurn:
        return ConversationTurn(
            id=row[0],
            user_id=row[1],
            mode=row[2],
            user_message=row[3],
            ai_response=row[4],
            grammar_corrections=json.loads(row[5]) if row[5] else None,
            created_at=_from_db_time(row[6]),
        )

    # Conversations

    def save_conversation(
        self,
        user_id: str,
        mode: str,
        user_message: str,
        ai_response: str,
        grammar_corrections: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ConversationTurn:
        """Appends one exchange to the conversations table.

        Returns:
            The stored turn, with its generated id.
        """
        turn = ConversationTurn(
            user_id=user_id,
            mode=mode,
            user_message=user_message,
            ai_response=ai_response,
            grammar_corrections=grammar_corrections,
            created_at=now or utcnow(),
        )
        try:
            self.connection.execute(
                f"INSERT INTO conversations ({CONVERSATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    turn.id,
                    turn.user_id,
                    turn.mode,
                    turn.user_message,
                    turn.ai_response,
                    json.dumps(turn.grammar_corrections)
                    if turn.grammar_corrections is not None
                    else None,
                    _to_db_time(turn.created_at),
                ),
            )
        except duckdb.Error as e:
            logger.error("Error saving conversation: %s", e)
            raise PersistenceError(f"Could not save conversation: {e}") from e
        return turn

    def get_conversation_history(
        self, user_id: str, mode: Optional[str] = None, limit: int = 20
    ) -> List[ConversationTurn]:
        """Retrieves the most recent turns of a user, oldest first.

        Args:
            user_id: Owner of the conversation.
            mode: Optional mode filter ("chat", "scenario").
            limit: Number of recent turns to return.
        """
        query = f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE user_id = ?"
        params: List[Any] = [user_id]
        if mode:
            query += " AND mode = ?"
            params.append(mode)
        query += f" ORDER BY created_at DESC LIMIT {int(limit)}"

        try:
            rows = self.connection.execute(query, params).fetchall()
        except duckdb.Error as e:
            logger.error("Error fetching conversation history: %s", e)
            raise PersistenceError(f"Could not fetch conversation history: {e}") from e

        return [self._row_to_turn(row) for row in reversed(rows)]

    # Vocabulary

    def add_vocabulary_word(
        self,
        user_id: str,
        term: str,
        translation: str,
        example: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VocabularyItem:
        """Adds a word that is due for review immediately."""
        now = now or utcnow()
        item = VocabularyItem(
            owner_id=to_vocabulary_user_id(user_id),
            term=term,
            translation=translation,
            example=example,
            correct_streak=0,
            last_reviewed_at=now,
            next_review_at=now,
            created_at=now,
        )
        try:
            self.connection.execute(
                f"INSERT INTO vocabulary ({VOCABULARY_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    item.id,
                    item.owner_id,
                    item.term,
                    item.translation,
                    item.example,
                    item.correct_streak,
                    _to_db_time(item.last_reviewed_at),
                    _to_db_time(item.next_review_at),
                    _to_db_time(item.created_at),
                ),
            )
        except duckdb.Error as e:
            logger.error("Error adding vocabulary word %r: %s", term, e)
            raise PersistenceError(f"Could not add word '{term}': {e}") from e
        return item

    def get_vocabulary_item(self, item_id: str) -> VocabularyItem:
        """Retrieves one vocabulary item.

        Raises:
            NotFoundError: If no item has this id.
        """
        try:
            row = self.connection.execute(
                f"SELECT {VOCABULARY_COLUMNS} FROM vocabulary WHERE id = ?",
                (item_id,),
            ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(f"Could not fetch vocabulary word: {e}") from e

        if row is None:
            raise NotFoundError(
                f"Vocabulary word '{item_id}' not found", details={"id": item_id}
            )
        return self._row_to_item(row)

    def get_vocabulary_due(
        self, user_id: str, now: Optional[datetime] = None, limit: int = DUE_PAGE_SIZE
    ) -> List[VocabularyItem]:
        """Retrieves the words due for review, oldest-due first.

        Args:
            user_id: Owner of the words.
            now: Reference time; defaults to the current UTC time.
            limit: Maximum number of words returned.
        """
        now = now or utcnow()
        try:
            rows = self.connection.execute(
                f"""
                SELECT {VOCABULARY_COLUMNS} FROM vocabulary
                WHERE user_id = ? AND next_review <= ?
                ORDER BY next_review ASC
                LIMIT {int(limit)}
            """,
                (to_vocabulary_user_id(user_id), _to_db_time(now)),
            ).fetchall()
        except duckdb.Error as e:
            logger.error("Error fetching vocabulary: %s", e)
            raise PersistenceError(f"Could not fetch due vocabulary: {e}") from e

        return [self._row_to_item(row) for row in rows]

    def update_vocabulary_review(
        self,
        item_id: str,
        correct: bool,
        now: Optional[datetime] = None,
        scheduler: Optional[ReviewScheduler] = None,
    ) -> VocabularyItem:
        """Applies a review to a word and stores the new streak and dates.

        The read and the write run in one transaction.

        Raises:
            NotFoundError: If no item has this id.
        """
        now = now or utcnow()
        scheduler = scheduler or ReviewScheduler()

        try:
            self.connection.begin()
        except duckdb.Error as e:
            raise PersistenceError(f"Could not start transaction: {e}") from e

        try:
            item = self.get_vocabulary_item(item_id)
            updated = scheduler.apply(item, correct, now)
            self.connection.execute(
                """
                UPDATE vocabulary
                SET correct_count = ?, last_reviewed = ?, next_review = ?
                WHERE id = ?
            """,
                (
                    updated.correct_streak,
                    _to_db_time(updated.last_reviewed_at),
                    _to_db_time(updated.next_review_at),
                    item_id,
                ),
            )
            self.connection.commit()
        except duckdb.Error as e:
            self.connection.rollback()
            logger.error("Error updating vocabulary: %s", e)
            raise PersistenceError(f"Could not update vocabulary word: {e}") from e
        except Exception:
            self.connection.rollback()
            raise

        return updated

    def count_vocabulary(self, user_id: str) -> int:
        """Counts the words a user owns."""
        try:
            return self.connection.execute(
                "SELECT COUNT(*) FROM vocabulary WHERE user_id = ?",
                (to_vocabulary_user_id(user_id),),
            ).fetchone()[0]
        except duckdb.Error as e:
            raise PersistenceError(f"Could not count vocabulary: {e}") from e

    def close(self) -> None:
        """Closes the database connection."""
        self.connection.close()

    def __enter__(self) -> "BuddyDatabase":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
