"""
Quiz session controller for the citizenship practice quiz.
Owns the lifecycle of one quiz attempt as an explicit state machine.
"""
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager, DataManagerError, LoadError, ValidationError
from .models import (
    OPTION_COUNT, UNANSWERED, Direction, Question, QuestionPool,
    QuizSession, QuizSettings, SessionState
)
from .quiz_engine import InsufficientQuestionsError, QuizEngine

__all__ = [
    'QuizController', 'QuizControllerError', 'InvalidOperationError',
    'IncompleteAnswersError', 'InsufficientQuestionsError', 'LoadError',
    'ValidationError'
]


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InvalidOperationError(QuizControllerError):
    """Raised when an operation is invoked in a state that forbids it."""

    def __init__(self, operation: str, state: SessionState):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while quiz is {state.value}")


class IncompleteAnswersError(QuizControllerError):
    """Raised when finishing a session that still has unanswered questions."""

    def __init__(self, unanswered: List[int]):
        self.unanswered = list(unanswered)
        numbers = ", ".join(str(index + 1) for index in self.unanswered)
        super().__init__(f"{len(self.unanswered)} question(s) unanswered: {numbers}")


class QuizController:
    """
    Orchestrates one quiz attempt.

    States move Idle -> Ready (pool loaded) -> Active (answering) ->
    Scored (results computed) -> Ready (reset). Each operation checks that
    it is a legal transition from the current state and validates its
    arguments before touching anything, so a failed call leaves the
    controller exactly as it was.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: Optional[ConfigManager] = None,
        quiz_engine: Optional[QuizEngine] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Instance for loading the question pool
            config_manager: Source of default settings for new sessions
            quiz_engine: Sampling and scoring engine, a new one if None
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.quiz_engine = quiz_engine or QuizEngine()

        self._state = SessionState.IDLE
        self._pool: Optional[QuestionPool] = None
        self._session: Optional[QuizSession] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pool(self) -> Optional[QuestionPool]:
        return self._pool

    @property
    def session(self) -> Optional[QuizSession]:
        return self._session

    def _require_state(self, operation: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            self.logger.warning(
                f"Rejected {operation} in state {self._state.value}",
                extra={
                    'event_type': 'invalid_operation',
                    'operation': operation,
                    'state': self._state.value,
                    'timestamp': time.time()
                }
            )
            raise InvalidOperationError(operation, self._state)

    def _transition(self, new_state: SessionState, reason: str) -> None:
        previous = self._state
        self._state = new_state
        self.logger.info(
            f"Quiz state: {previous.value} -> {new_state.value} ({reason})",
            extra={
                'event_type': 'state_transition',
                'from_state': previous.value,
                'to_state': new_state.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    async def load_pool(self, source: Optional[str] = None, refresh: bool = False) -> QuestionPool:
        """
        Load and validate the question pool.

        Args:
            source: URL or file path, defaults to the configured source
            refresh: Fetch again even if the source is cached

        Returns:
            The loaded pool

        Raises:
            InvalidOperationError: If a session is in progress or scored
            LoadError: If the source could not be fetched
            ValidationError: If the data breaks the question schema
        """
        self._require_state("load questions", SessionState.IDLE, SessionState.READY)

        if source is None and self.config_manager is not None:
            source = self.config_manager.get_question_source()

        pool = await self.data_manager.load_pool(source, refresh=refresh)

        # Another call may have started a session while the fetch was pending
        self._require_state("load questions", SessionState.IDLE, SessionState.READY)
        self._pool = pool
        self._transition(SessionState.READY, f"loaded {len(pool)} questions")
        return pool

    def start_session(self, settings: Optional[QuizSettings] = None) -> QuizSession:
        """
        Sample questions from the pool and begin a new attempt.

        Args:
            settings: Sampling settings, the configured defaults if None

        Returns:
            The new active session

        Raises:
            InvalidOperationError: If not in the ready state
            InsufficientQuestionsError: If the pool cannot satisfy the settings
            ValueError: If a requested count is below 1
        """
        self._require_state("start a quiz", SessionState.READY)

        if settings is None:
            if self.config_manager is not None:
                settings = self.config_manager.get_quiz_settings()
            else:
                settings = QuizSettings()

        selected = self.quiz_engine.select_questions(self._pool, settings)

        self._session = QuizSession(
            selected_questions=tuple(selected),
            answers=[UNANSWERED] * len(selected),
            settings=settings
        )
        self._transition(SessionState.ACTIVE, f"started with {len(selected)} questions")
        return self._session

    def select_answer(self, question_index: int, option_index: int) -> None:
        """
        Record the chosen option for a question, replacing any earlier choice.

        Args:
            question_index: Position of the question in the session
            option_index: Index of the chosen option

        Raises:
            InvalidOperationError: If no session is active
            ValueError: If either index is out of range
        """
        self._require_state("answer a question", SessionState.ACTIVE)

        total = self._session.total_questions
        if not 0 <= question_index < total:
            raise ValueError(f"Question index must be between 0 and {total - 1}, got {question_index}")
        if not 0 <= option_index < OPTION_COUNT:
            raise ValueError(f"Option index must be between 0 and {OPTION_COUNT - 1}, got {option_index}")

        self._session.answers[question_index] = option_index
        self.logger.debug(f"Question {question_index + 1} answered with option {option_index}")

    def navigate(self, direction: Direction, index: Optional[int] = None) -> int:
        """
        Move the current position; moves past either end are ignored.

        Args:
            direction: PREVIOUS, NEXT or JUMP
            index: Target position, required for JUMP

        Returns:
            The current position after the move

        Raises:
            InvalidOperationError: If no session is active
            ValueError: If JUMP is requested without an index
        """
        self._require_state("navigate", SessionState.ACTIVE)

        session = self._session
        if direction is Direction.PREVIOUS:
            target = session.current_position - 1
        elif direction is Direction.NEXT:
            target = session.current_position + 1
        elif direction is Direction.JUMP:
            if index is None:
                raise ValueError("Jump navigation requires a target index")
            target = index
        else:
            raise ValueError(f"Unknown navigation direction: {direction}")

        if 0 <= target < session.total_questions:
            session.current_position = target

        return session.current_position

    def finish(self) -> int:
        """
        Score the active session.

        Returns:
            Number of correct answers

        Raises:
            InvalidOperationError: If no session is active
            IncompleteAnswersError: If any question is unanswered
        """
        self._require_state("finish the quiz", SessionState.ACTIVE)

        unanswered = self.get_unanswered_indices()
        if unanswered:
            raise IncompleteAnswersError(unanswered)

        session = self._session
        session.score = self.quiz_engine.calculate_score(session.selected_questions, session.answers)
        session.finish_time = datetime.now()
        self._transition(
            SessionState.SCORED,
            f"scored {session.score}/{session.total_questions}"
        )
        return session.score

    def reset(self) -> None:
        """
        Discard the current session and return to the ready state.

        Raises:
            InvalidOperationError: If there is no active or scored session
        """
        self._require_state("reset the quiz", SessionState.ACTIVE, SessionState.SCORED)
        self._session = None
        self._transition(SessionState.READY, "reset")

    def get_current_question(self) -> Optional[Question]:
        """
        Get the question at the current position.

        Returns:
            Current Question if a session exists, None otherwise
        """
        if self._session is None:
            return None
        return self._session.selected_questions[self._session.current_position]

    def get_unanswered_indices(self) -> List[int]:
        if self._session is None:
            return []
        return [
            position for position, answer in enumerate(self._session.answers)
            if answer is UNANSWERED
        ]

    def all_answered(self) -> bool:
        return self._session is not None and not self.get_unanswered_indices()

    def get_session_progress(self) -> Optional[Dict[str, Any]]:
        """
        Get progress information for the current session.

        Returns:
            Dictionary with progress info, None if there is no session
        """
        session = self._session
        if session is None:
            return None

        stratify = session.settings.stratify
        return {
            'state': self._state.value,
            'current_question': session.current_position + 1,
            'total_questions': session.total_questions,
            'answered': session.answered_count,
            'unanswered': [index + 1 for index in self.get_unanswered_indices()],
            'score': session.score,
            'start_time': session.start_time,
            'settings': {
                'question_count': session.settings.question_count,
                'stratify_category': stratify.category if stratify else None,
                'stratify_count': stratify.count if stratify else None
            }
        }

    def get_results(self) -> Dict[str, Any]:
        """
        Get the score and per-question review of a finished session.

        Returns:
            Dictionary with score, total, percentage, feedback and review

        Raises:
            InvalidOperationError: If the session has not been scored
        """
        self._require_state("show results", SessionState.SCORED)

        session = self._session
        total = session.total_questions
        return {
            'score': session.score,
            'total': total,
            'percentage': round(session.score / total * 100) if total else 0,
            'feedback': self.quiz_engine.get_score_feedback(session.score, total),
            'review': self.quiz_engine.build_review(session.selected_questions, session.answers),
            'duration': (session.finish_time - session.start_time).total_seconds()
        }

    def get_user_friendly_error_message(self, error: Exception) -> str:
        """
        Generate user-friendly error messages.

        Args:
            error: The exception raised by a controller operation

        Returns:
            User-friendly error message
        """
        if isinstance(error, LoadError):
            return f"❌ Could not load the question bank: {error}"

        elif isinstance(error, ValidationError):
            details = "\n".join(error.issues[:5])
            if len(error.issues) > 5:
                details += f"\n... and {len(error.issues) - 5} more"
            return f"❌ The question bank is invalid:\n{details}"

        elif isinstance(error, DataManagerError):
            return f"❌ Question bank error: {error}"

        elif isinstance(error, InsufficientQuestionsError):
            return f"❌ Not enough questions for this quiz. {error}. Try `/set_questions` with a smaller number."

        elif isinstance(error, IncompleteAnswersError):
            return f"⚠️ Please answer every question before finishing. {error}."

        elif isinstance(error, InvalidOperationError):
            if self._state is SessionState.ACTIVE:
                return "❌ A quiz is already in progress. Finish it with `/finish` or discard it with `/reset`."
            if self._state is SessionState.SCORED:
                return "❌ This quiz is finished. Use `/reset` to start over."
            return "❌ No quiz in progress. Start one with `/start`."

        elif isinstance(error, ValueError):
            return f"❌ Invalid input: {error}"

        else:
            return "❌ An unexpected error occurred. Please try again."
