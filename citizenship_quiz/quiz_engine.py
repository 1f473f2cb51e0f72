"""
Quiz engine core logic for the citizenship practice quiz.
Handles question sampling, ordering and scoring.
"""
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from .models import UNANSWERED, Question, QuizSettings

logger = logging.getLogger(__name__)


class QuizEngineError(Exception):
    """Base exception for quiz engine errors."""
    pass


class InsufficientQuestionsError(QuizEngineError):
    """Raised when the pool is too small for the requested sample."""

    def __init__(self, requested: int, available: int, category: Optional[str] = None):
        self.requested = requested
        self.available = available
        self.category = category
        if category is None:
            message = f"Requested {requested} questions but only {available} are available"
        else:
            message = (
                f"Requested {requested} questions from section '{category}' "
                f"but only {available} are available"
            )
        super().__init__(message)


class QuizEngine:
    """Core quiz engine that handles question selection, ordering and scoring."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Random source, a fresh unseeded one if None
        """
        self._rng = rng or random.Random()

    def select_questions(self, pool: Sequence[Question], settings: QuizSettings) -> List[Question]:
        """
        Sample questions for a new session.

        With stratification, settings.stratify.count questions come from the
        named section and settings.question_count from all other sections.
        The combined set is reshuffled so the split is not visible.

        Args:
            pool: All available questions
            settings: Quiz configuration settings

        Returns:
            List of selected questions in random order

        Raises:
            ValueError: If a requested count is below 1
            InsufficientQuestionsError: If a partition cannot satisfy its count
        """
        if settings.question_count < 1:
            raise ValueError(f"Question count must be at least 1, got {settings.question_count}")

        stratify = settings.stratify
        if stratify is None:
            return self.sample_questions(pool, settings.question_count)

        if stratify.count < 1:
            raise ValueError(f"Section question count must be at least 1, got {stratify.count}")

        matching = [q for q in pool if q.section == stratify.category]
        remainder = [q for q in pool if q.section != stratify.category]

        # Check both partitions before sampling either
        if stratify.count > len(matching):
            raise InsufficientQuestionsError(stratify.count, len(matching), stratify.category)
        if settings.question_count > len(remainder):
            raise InsufficientQuestionsError(settings.question_count, len(remainder))

        selected = (
            self.sample_questions(matching, stratify.count) +
            self.sample_questions(remainder, settings.question_count)
        )
        logger.debug(
            f"Stratified selection: {stratify.count} from '{stratify.category}', "
            f"{settings.question_count} from other sections"
        )
        return self.shuffle_questions(selected)

    def sample_questions(self, questions: Sequence[Question], count: int) -> List[Question]:
        """
        Uniformly sample questions without replacement, in random order.

        Args:
            questions: Candidates to draw from
            count: Number of questions to draw

        Returns:
            New list of count distinct positions from questions

        Raises:
            InsufficientQuestionsError: If count exceeds the candidates
        """
        if count > len(questions):
            raise InsufficientQuestionsError(count, len(questions))
        return self.shuffle_questions(questions)[:count]

    def shuffle_questions(self, questions: Sequence[Question]) -> List[Question]:
        """
        Shuffle questions randomly.

        Args:
            questions: Questions to shuffle

        Returns:
            New list with questions in random order
        """
        shuffled = list(questions)
        # Random.shuffle is Fisher-Yates: every permutation is equally likely
        self._rng.shuffle(shuffled)
        return shuffled

    def calculate_score(self, questions: Sequence[Question], answers: Sequence[Optional[int]]) -> int:
        """Count the answers that match each question's correct option."""
        return sum(
            1 for question, answer in zip(questions, answers)
            if answer is not UNANSWERED and answer == question.correct_index
        )

    def get_score_feedback(self, score: int, total: int) -> str:
        """
        Get the encouragement line shown with the results.

        Args:
            score: Number of correct answers
            total: Number of questions in the session

        Returns:
            Short feedback message
        """
        if total > 0 and score == total:
            return "Perfect score!"

        ratio = score / total if total else 0
        if ratio >= 0.7:
            return "Great job!"
        if ratio >= 0.5:
            return "Good effort!"
        return "Keep practicing!"

    def build_review(self, questions: Sequence[Question], answers: Sequence[Optional[int]]) -> List[Dict[str, Any]]:
        """
        Build the per-question review shown after scoring.

        Args:
            questions: Questions of the session in order
            answers: Recorded answer for each question

        Returns:
            One dictionary per question with the chosen and correct options
        """
        review = []
        for position, (question, answer) in enumerate(zip(questions, answers)):
            review.append({
                'position': position,
                'text': question.text,
                'section': question.section,
                'options': list(question.options),
                'chosen_index': answer,
                'correct_index': question.correct_index,
                'is_correct': answer == question.correct_index
            })
        return review
