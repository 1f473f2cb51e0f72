"""
Unit tests for the QuizEngine class.
"""
import random
import unittest
from collections import Counter

from citizenship_quiz.models import Question, QuizSettings, StratifySettings
from citizenship_quiz.quiz_engine import InsufficientQuestionsError, QuizEngine
from tests.test_fixtures import TestFixtures, VALUES_SECTION


class TestQuizEngineSelection(unittest.TestCase):
    """Test cases for QuizEngine question sampling."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine(random.Random(42))
        self.pool = TestFixtures.create_sample_questions()

    def test_select_exact_count_without_duplicates(self):
        """Test that N questions are drawn from the pool with no repeats."""
        for count in range(1, len(self.pool) + 1):
            with self.subTest(count=count):
                result = self.engine.select_questions(self.pool, QuizSettings(question_count=count))

                self.assertEqual(len(result), count)
                self.assertEqual(len(set(result)), count)
                self.assertTrue(all(question in self.pool for question in result))

    def test_select_whole_pool(self):
        """Test that asking for every question returns a permutation of the pool."""
        result = self.engine.select_questions(self.pool, QuizSettings(question_count=len(self.pool)))

        self.assertCountEqual(result, self.pool)

    def test_select_too_many_raises(self):
        """Test that asking for more than the pool holds fails."""
        with self.assertRaises(InsufficientQuestionsError) as ctx:
            self.engine.select_questions(self.pool, QuizSettings(question_count=len(self.pool) + 1))

        self.assertEqual(ctx.exception.requested, len(self.pool) + 1)
        self.assertEqual(ctx.exception.available, len(self.pool))
        self.assertIsNone(ctx.exception.category)

    def test_select_from_empty_pool_raises(self):
        """Test that an empty pool cannot satisfy any request."""
        with self.assertRaises(InsufficientQuestionsError):
            self.engine.select_questions((), QuizSettings(question_count=1))

    def test_select_non_positive_count_raises(self):
        """Test that a count below one is rejected."""
        for count in (0, -3):
            with self.subTest(count=count):
                with self.assertRaises(ValueError):
                    self.engine.select_questions(self.pool, QuizSettings(question_count=count))

    def test_select_does_not_modify_pool(self):
        """Test that sampling leaves the input untouched."""
        pool = list(self.pool)

        self.engine.select_questions(pool, QuizSettings(question_count=3))

        self.assertEqual(pool, list(self.pool))

    def test_select_is_reproducible_with_seed(self):
        """Test that the same seed gives the same selection."""
        settings = QuizSettings(question_count=4)

        first = QuizEngine(random.Random(7)).select_questions(self.pool, settings)
        second = QuizEngine(random.Random(7)).select_questions(self.pool, settings)

        self.assertEqual(first, second)


class TestQuizEngineStratified(unittest.TestCase):
    """Test cases for stratified sampling."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine(random.Random(1))
        self.pool = TestFixtures.create_sample_questions()

    def test_exact_count_from_category(self):
        """Test that exactly the requested number of section questions is drawn."""
        for category_count in (1, 2, 3):
            with self.subTest(category_count=category_count):
                settings = QuizSettings(
                    question_count=2,
                    stratify=StratifySettings(VALUES_SECTION, category_count)
                )

                for _ in range(20):
                    result = self.engine.select_questions(self.pool, settings)

                    in_category = [q for q in result if q.section == VALUES_SECTION]
                    self.assertEqual(len(in_category), category_count)
                    self.assertEqual(len(result), category_count + 2)
                    self.assertEqual(len(set(result)), len(result))

    def test_total_matches_settings(self):
        """Test that the session size equals QuizSettings.total_questions."""
        settings = TestFixtures.create_stratified_settings()

        result = self.engine.select_questions(self.pool, settings)

        self.assertEqual(len(result), settings.total_questions)

    def test_category_too_small_raises(self):
        """Test that a section with too few questions fails."""
        settings = QuizSettings(question_count=1, stratify=StratifySettings(VALUES_SECTION, 4))

        with self.assertRaises(InsufficientQuestionsError) as ctx:
            self.engine.select_questions(self.pool, settings)

        self.assertEqual(ctx.exception.category, VALUES_SECTION)
        self.assertEqual(ctx.exception.available, 3)

    def test_unknown_category_raises(self):
        """Test that a section with no questions fails."""
        settings = QuizSettings(question_count=1, stratify=StratifySettings("History", 1))

        with self.assertRaises(InsufficientQuestionsError):
            self.engine.select_questions(self.pool, settings)

    def test_remainder_too_small_raises(self):
        """Test that the other sections must also cover their share."""
        settings = QuizSettings(question_count=5, stratify=StratifySettings(VALUES_SECTION, 1))

        with self.assertRaises(InsufficientQuestionsError) as ctx:
            self.engine.select_questions(self.pool, settings)

        self.assertIsNone(ctx.exception.category)
        self.assertEqual(ctx.exception.available, 4)

    def test_non_positive_category_count_raises(self):
        """Test that a section count below one is rejected."""
        settings = QuizSettings(question_count=1, stratify=StratifySettings(VALUES_SECTION, 0))

        with self.assertRaises(ValueError):
            self.engine.select_questions(self.pool, settings)

    def test_category_questions_not_always_first(self):
        """Test that the combined selection is reshuffled."""
        settings = QuizSettings(question_count=4, stratify=StratifySettings(VALUES_SECTION, 3))

        first_sections = Counter(
            self.engine.select_questions(self.pool, settings)[0].section
            for _ in range(200)
        )

        self.assertGreater(first_sections[VALUES_SECTION], 0)
        self.assertGreater(first_sections["Geography"], 0)


class TestQuizEngineShuffle(unittest.TestCase):
    """Test cases for the shuffle used by sampling."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine(random.Random(2024))
        self.pool = TestFixtures.create_sample_questions()[:3]

    def test_shuffle_returns_new_list(self):
        """Test that shuffling does not reorder the input."""
        original = list(self.pool)

        shuffled = self.engine.shuffle_questions(original)

        self.assertIsNot(shuffled, original)
        self.assertEqual(original, list(self.pool))
        self.assertCountEqual(shuffled, original)

    def test_every_permutation_is_equally_likely(self):
        """Test that all orderings of three questions appear about equally often."""
        runs = 6000
        counts = Counter(tuple(self.engine.shuffle_questions(self.pool)) for _ in range(runs))

        self.assertEqual(len(counts), 6)
        for permutation, count in counts.items():
            # Expected 1000 each; bounds are roughly six standard deviations
            self.assertGreater(count, 820, permutation)
            self.assertLess(count, 1180, permutation)

    def test_sample_every_question_reachable_in_first_slot(self):
        """Test that any question can be drawn first."""
        firsts = {self.engine.sample_questions(self.pool, 1)[0] for _ in range(200)}

        self.assertEqual(firsts, set(self.pool))


class TestQuizEngineScoring(unittest.TestCase):
    """Test cases for scoring, feedback and review."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine()
        self.questions = TestFixtures.create_two_question_pool()

    def test_calculate_score(self):
        """Test that matching answers are counted."""
        self.assertEqual(self.engine.calculate_score(self.questions, [2, 3]), 1)
        self.assertEqual(self.engine.calculate_score(self.questions, [2, 0]), 2)
        self.assertEqual(self.engine.calculate_score(self.questions, [1, 1]), 0)

    def test_unanswered_slots_score_nothing(self):
        """Test that empty slots never count as correct."""
        self.assertEqual(self.engine.calculate_score(self.questions, [None, 0]), 1)

    def test_score_feedback_thresholds(self):
        """Test the feedback line for each score band."""
        self.assertEqual(self.engine.get_score_feedback(10, 10), "Perfect score!")
        self.assertEqual(self.engine.get_score_feedback(9, 10), "Great job!")
        self.assertEqual(self.engine.get_score_feedback(7, 10), "Great job!")
        self.assertEqual(self.engine.get_score_feedback(6, 10), "Good effort!")
        self.assertEqual(self.engine.get_score_feedback(5, 10), "Good effort!")
        self.assertEqual(self.engine.get_score_feedback(4, 10), "Keep practicing!")
        self.assertEqual(self.engine.get_score_feedback(0, 10), "Keep practicing!")
        self.assertEqual(self.engine.get_score_feedback(20, 20), "Perfect score!")

    def test_build_review(self):
        """Test the per-question review entries."""
        review = self.engine.build_review(self.questions, [2, 3])

        self.assertEqual(len(review), 2)
        self.assertTrue(review[0]['is_correct'])
        self.assertEqual(review[0]['chosen_index'], 2)
        self.assertFalse(review[1]['is_correct'])
        self.assertEqual(review[1]['chosen_index'], 3)
        self.assertEqual(review[1]['correct_index'], 0)
        self.assertEqual(review[1]['options'], ["A", "B", "C", "D"])
        self.assertEqual(review[1]['position'], 1)

    def test_correct_option_property(self):
        """Test that a question exposes the text of its correct option."""
        question = Question("Capital?", "Geography", ("Sydney", "Melbourne", "Canberra", "Perth"), 2)

        self.assertEqual(question.correct_option, "Canberra")


if __name__ == '__main__':
    unittest.main()
