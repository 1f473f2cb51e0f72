"""
Core data models for the citizenship practice quiz.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


# Marker for a slot the user has not answered yet
UNANSWERED = None

OPTION_COUNT = 4


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    text: str
    section: str
    options: Tuple[str, ...]
    correct_index: int

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


QuestionPool = Tuple[Question, ...]


@dataclass(frozen=True)
class StratifySettings:
    """Draw a fixed number of questions from one section."""
    category: str
    count: int


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    question_count: int = 10
    stratify: Optional[StratifySettings] = None

    @property
    def total_questions(self) -> int:
        """Number of questions a session started with these settings holds."""
        if self.stratify is None:
            return self.question_count
        return self.question_count + self.stratify.count


class SessionState(Enum):
    """Enumeration of quiz controller states."""
    IDLE = "idle"
    READY = "ready"
    ACTIVE = "active"
    SCORED = "scored"


class Direction(Enum):
    """Navigation moves within an active session."""
    PREVIOUS = "previous"
    NEXT = "next"
    JUMP = "jump"


@dataclass
class QuizSession:
    """Represents one attempt at a sampled subset of the pool."""
    selected_questions: Tuple[Question, ...]
    answers: List[Optional[int]]
    settings: QuizSettings
    current_position: int = 0
    score: Optional[int] = None
    start_time: datetime = field(default_factory=datetime.now)
    finish_time: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.selected_questions)

    @property
    def answered_count(self) -> int:
        return sum(1 for answer in self.answers if answer is not UNANSWERED)
