"""
Unit tests for ConfigManager class.
"""
import logging
import unittest

from citizenship_quiz.config_manager import ConfigManager
from citizenship_quiz.models import QuizSettings, StratifySettings
from tests.test_fixtures import VALUES_SECTION


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        """Test that ConfigManager initializes with correct default values."""
        settings = self.config_manager.get_quiz_settings()

        self.assertEqual(settings.question_count, 10)
        self.assertIsNone(settings.stratify)
        self.assertEqual(self.config_manager.get_question_source(), "./questions.json")

    def test_get_quiz_settings_returns_copy(self):
        """Test that callers cannot change the stored settings."""
        settings = self.config_manager.get_quiz_settings()
        settings.question_count = 50

        self.assertEqual(self.config_manager.get_question_count(), 10)

    def test_set_question_count_valid_values(self):
        """Test setting valid question count values."""
        for count in (1, 5, 20, 100):
            with self.subTest(count=count):
                result = self.config_manager.set_question_count(count)

                self.assertTrue(result['success'])
                self.assertIn(str(count), result['user_message'])
                self.assertEqual(self.config_manager.get_question_count(), count)

    def test_set_question_count_invalid_values(self):
        """Test that out-of-range and non-integer counts are rejected."""
        cases = [
            (0, "at least 1"),
            (-5, "at least 1"),
            (101, "cannot exceed 100"),
            ("10", "must be an integer"),
            (2.5, "must be an integer"),
            (None, "must be an integer"),
            (True, "must be an integer"),
        ]
        for count, expected in cases:
            with self.subTest(count=count):
                result = self.config_manager.set_question_count(count)

                self.assertFalse(result['success'])
                self.assertIn(expected, result['error'])
                self.assertTrue(result['user_message'].startswith("❌"))

        self.assertEqual(self.config_manager.get_question_count(), 10)

    def test_set_stratify(self):
        """Test enabling stratified sampling."""
        result = self.config_manager.set_stratify(VALUES_SECTION, 5)

        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_stratify(), StratifySettings(VALUES_SECTION, 5))
        self.assertEqual(self.config_manager.get_quiz_settings().total_questions, 15)

    def test_set_stratify_invalid_values(self):
        """Test that bad sections and counts leave stratification off."""
        cases = [
            ("", 5, "cannot be empty"),
            ("   ", 5, "cannot be empty"),
            (None, 5, "cannot be empty"),
            (VALUES_SECTION, 0, "at least 1"),
            (VALUES_SECTION, 101, "cannot exceed 100"),
            (VALUES_SECTION, "5", "must be an integer"),
        ]
        for category, count, expected in cases:
            with self.subTest(category=category, count=count):
                result = self.config_manager.set_stratify(category, count)

                self.assertFalse(result['success'])
                self.assertIn(expected, result['error'])

        self.assertIsNone(self.config_manager.get_stratify())

    def test_clear_stratify(self):
        """Test turning stratified sampling off."""
        self.config_manager.set_stratify(VALUES_SECTION, 5)

        result = self.config_manager.clear_stratify()

        self.assertTrue(result['success'])
        self.assertEqual(result['previous_value'], StratifySettings(VALUES_SECTION, 5))
        self.assertIsNone(self.config_manager.get_stratify())

    def test_set_question_source(self):
        """Test that the source is stored without surrounding whitespace."""
        result = self.config_manager.set_question_source("  https://example.com/questions.json ")

        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_question_source(), "https://example.com/questions.json")

    def test_set_question_source_invalid(self):
        """Test that empty and non-string sources are rejected."""
        for source in ("", "   ", None, 42):
            with self.subTest(source=source):
                result = self.config_manager.set_question_source(source)

                self.assertFalse(result['success'])

        self.assertEqual(self.config_manager.get_question_source(), "./questions.json")

    def test_apply_config(self):
        """Test applying the quiz section of config.json."""
        errors = self.config_manager.apply_config({
            'quiz': {
                'question_source': "data/questions.json",
                'default_question_count': 15,
                'stratify': {'category': VALUES_SECTION, 'count': 5}
            }
        })

        self.assertEqual(errors, [])
        self.assertEqual(self.config_manager.get_question_source(), "data/questions.json")
        self.assertEqual(
            self.config_manager.get_quiz_settings(),
            QuizSettings(question_count=15, stratify=StratifySettings(VALUES_SECTION, 5))
        )

    def test_apply_config_skips_invalid_values(self):
        """Test that rejected values are reported and defaults kept."""
        errors = self.config_manager.apply_config({
            'quiz': {
                'default_question_count': 500,
                'stratify': "Australian values"
            }
        })

        self.assertEqual(len(errors), 2)
        self.assertEqual(self.config_manager.get_question_count(), 10)
        self.assertIsNone(self.config_manager.get_stratify())

    def test_apply_config_without_quiz_section(self):
        """Test that a config with no quiz section changes nothing."""
        self.assertEqual(self.config_manager.apply_config({'bot': {}}), [])
        self.assertEqual(self.config_manager.apply_config({'quiz': None}), [])
        self.assertEqual(self.config_manager.get_question_count(), 10)

    def test_apply_config_non_object_quiz_section(self):
        """Test that a quiz section that is not an object is reported, not raised."""
        for quiz_section in (["question_source"], "questions.json", 5):
            with self.subTest(quiz_section=quiz_section):
                errors = self.config_manager.apply_config({'quiz': quiz_section})

                self.assertEqual(len(errors), 1)
                self.assertIn("must be an object", errors[0])

        self.assertEqual(self.config_manager.get_question_source(), "./questions.json")

    def test_apply_config_null_stratify(self):
        """Test that a null stratify value leaves sampling flat."""
        errors = self.config_manager.apply_config({'quiz': {'stratify': None}})

        self.assertEqual(errors, [])
        self.assertIsNone(self.config_manager.get_stratify())

    def test_reset_to_defaults(self):
        """Test resetting all settings to default values."""
        self.config_manager.set_question_count(25)
        self.config_manager.set_stratify(VALUES_SECTION, 3)
        self.config_manager.set_question_source("other.json")

        self.config_manager.reset_to_defaults()

        self.assertEqual(self.config_manager.get_question_count(), 10)
        self.assertIsNone(self.config_manager.get_stratify())
        self.assertEqual(self.config_manager.get_question_source(), "./questions.json")

    def test_validate_settings(self):
        """Test validation of current settings."""
        result = self.config_manager.validate_settings()
        self.assertTrue(result['valid'])
        self.assertEqual(result['issues'], [])

        # Bypass the setters to simulate corrupted state
        self.config_manager._global_settings.question_count = 0
        self.config_manager._global_settings.stratify = StratifySettings("", 500)

        result = self.config_manager.validate_settings()
        self.assertFalse(result['valid'])
        self.assertEqual(len(result['issues']), 3)

        friendly = self.config_manager.get_user_friendly_validation_errors()
        self.assertEqual(len(friendly), 3)
        self.assertTrue(any("Question Count Issue" in message for message in friendly))
        self.assertTrue(any("Section Sampling Issue" in message for message in friendly))

    def test_settings_summary(self):
        """Test the formatted settings summary."""
        summary = self.config_manager.get_settings_summary()
        self.assertIn("• Questions: 10", summary)
        self.assertIn("• Stratified: off", summary)

        self.config_manager.set_stratify(VALUES_SECTION, 5)

        summary = self.config_manager.get_settings_summary()
        self.assertIn(f"• Stratified: 5 from {VALUES_SECTION}", summary)
        self.assertIn("• Source: ./questions.json", summary)


if __name__ == '__main__':
    unittest.main()
