"""Core models and review scheduling for ItalianBuddy."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_INTERVALS = (1, 3, 7, 14, 30)
DUE_PAGE_SIZE = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VocabularyItem(BaseModel):
    """A vocabulary word owned by one learner.

    Attributes:
        id: Unique identifier, assigned at creation.
        owner_id: Identifier of the learner.
        term: The word being learned.
        translation: Its translation.
        example: Example sentence stored with the word, if any.
        correct_streak: Consecutive correct reviews since the last miss.
        last_reviewed_at: Timestamp of the latest review.
        next_review_at: The item is due once this moment has passed.
        created_at: Creation timestamp.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = Field(..., description="Owner of the word")
    term: str = Field(..., description="The word to learn")
    translation: str = Field(..., description="Translation of the word")
    example: Optional[str] = Field(default=None, description="Example sentence")
    correct_streak: int = Field(default=0, ge=0)
    last_reviewed_at: datetime = Field(default_factory=utcnow)
    next_review_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class ReviewOutcome(BaseModel):
    """Values computed by a single review."""

    new_streak: int
    last_reviewed_at: datetime
    next_review_at: datetime
    interval_days: int

    model_config = ConfigDict(frozen=True)


class Turn(BaseModel):
    """One message of a conversation."""

    role: Literal["user", "assistant"]
    content: str


class Scenario(BaseModel):
    """A role-play situation the learner can practise."""

    id: str
    title: str
    ai_role: str = Field(..., alias="aiRole")
    objectives: List[str] = Field(default_factory=list)
    description: str = ""
    difficulty: str = ""
    icon: str = ""
    opening_line: str = Field(default="", alias="openingLine")

    model_config = ConfigDict(populate_by_name=True)


class GrammarCorrection(BaseModel):
    """A single mistake spotted in the learner's message."""

    mistake: Any = None
    correction: Any = None
    type: Any = None
    explanation: Any = None

    model_config = ConfigDict(extra="allow")


class GrammarCorrectionSet(BaseModel):
    """The structured block a model reply may carry."""

    errors: List[GrammarCorrection] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class ChatReply(BaseModel):
    """The visible reply text plus any corrections extracted from it."""

    ai_message: str
    grammar_corrections: Optional[GrammarCorrectionSet] = None

    def corrections_dict(self) -> Optional[Dict[str, Any]]:
        if self.grammar_corrections is None:
            return None
        return self.grammar_corrections.model_dump()


class ConversationTurn(BaseModel):
    """A stored exchange: what the learner wrote and what the model answered."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    mode: str
    user_message: str
    ai_response: str
    grammar_corrections: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)


class ReviewScheduler:
    """Fixed-ladder spaced repetition.

    A correct answer climbs one rung of the interval ladder, a miss drops
    back to the first rung. The rung is picked with the streak as it was
    *before* the answer, so the first correct answer of a new word waits
    the shortest interval.
    """

    def __init__(self, intervals: Sequence[int] = DEFAULT_INTERVALS):
        """Initializes the scheduler.

        Args:
            intervals: Ascending review intervals in days.

        Raises:
            ValueError: If the table is empty, non-positive or not ascending.
        """
        intervals = tuple(intervals)
        if not intervals:
            raise ValueError("Interval table must not be empty")
        if intervals[0] <= 0 or any(b <= a for a, b in zip(intervals, intervals[1:])):
            raise ValueError(f"Intervals must be positive and ascending: {intervals}")
        self.intervals = intervals

    def review(
        self, correct_streak: Optional[int], correct: bool, now: datetime
    ) -> ReviewOutcome:
        """Computes the new streak and review dates for one answer.

        Args:
            correct_streak: Current streak; None counts as 0.
            correct: Whether the learner answered correctly.
            now: Reference time of the review.

        Returns:
            The review outcome. The scheduler keeps no state between calls.
        """
        streak = max(correct_streak or 0, 0)

        if correct:
            new_streak = streak + 1
            index = min(streak, len(self.intervals) - 1)
        else:
            new_streak = 0
            index = 0

        interval = self.intervals[index]
        return ReviewOutcome(
            new_streak=new_streak,
            last_reviewed_at=now,
            next_review_at=now + timedelta(days=interval),
            interval_days=interval,
        )

    def apply(self, item: VocabularyItem, correct: bool, now: datetime) -> VocabularyItem:
        """Returns a copy of ``item`` with a review applied."""
        outcome = self.review(item.correct_streak, correct, now)
        return item.model_copy(
            update={
                "correct_streak": outcome.new_streak,
                "last_reviewed_at": outcome.last_reviewed_at,
                "next_review_at": outcome.next_review_at,
            }
        )


def is_due(item: VocabularyItem, now: datetime) -> bool:
    return item.next_review_at <= now


def select_due(
    items: Iterable[VocabularyItem], now: datetime, limit: int = DUE_PAGE_SIZE
) -> List[VocabularyItem]:
    """Returns due items, oldest-due first, at most ``limit`` of them."""
    due = sorted(
        (item for item in items if is_due(item, now)),
        key=lambda item: item.next_review_at,
    )
    return due[:limit]
