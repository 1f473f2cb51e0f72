"""
Configuration manager for quiz settings and the question source.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import QuizSettings, StratifySettings


class ConfigManager:
    """Manages default quiz settings used when a session is started."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_QUESTION_SOURCE = "./questions.json"

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100
    MIN_STRATIFY_COUNT = 1
    MAX_STRATIFY_COUNT = 100

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(question_count=self.DEFAULT_QUESTION_COUNT)
        self._question_source = self.DEFAULT_QUESTION_SOURCE

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the current QuizSettings
        """
        return QuizSettings(
            question_count=self._global_settings.question_count,
            stratify=self._global_settings.stratify
        )

    def _check_count(self, count: Any, label: str, minimum: int, maximum: int) -> Optional[Dict[str, Any]]:
        """Return a failure result if count is not an int within range."""
        if isinstance(count, bool) or not isinstance(count, int):
            error_msg = f"{label} must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        if count < minimum:
            error_msg = f"{label} must be at least {minimum}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {minimum}"
            }

        if count > maximum:
            error_msg = f"{label} cannot exceed {maximum}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {maximum}"
            }

        return None

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions per session.

        With stratification enabled this is the number drawn from the
        sections other than the stratified one.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_count(count, "Question count", self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT)
        if failure:
            return failure

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def get_question_count(self) -> int:
        return self._global_settings.question_count

    def set_stratify(self, category: str, count: int) -> Dict[str, Any]:
        """
        Draw a fixed number of questions from one section in every session.

        Args:
            category: Section label to draw from
            count: Number of questions from that section

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(category, str) or not category.strip():
            error_msg = "Section name cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Section name cannot be empty"
            }

        failure = self._check_count(count, "Section question count", self.MIN_STRATIFY_COUNT, self.MAX_STRATIFY_COUNT)
        if failure:
            return failure

        self._global_settings.stratify = StratifySettings(category=category, count=count)
        self.logger.info(f"Stratified sampling set to {count} questions from '{category}'")
        return {
            'success': True,
            'message': f"Stratified sampling set to {count} questions from '{category}'",
            'user_message': f"✅ Each quiz will include {count} questions from **{category}**"
        }

    def clear_stratify(self) -> Dict[str, Any]:
        """Turn stratified sampling off."""
        previous = self._global_settings.stratify
        self._global_settings.stratify = None
        self.logger.info("Stratified sampling disabled")
        return {
            'success': True,
            'message': "Stratified sampling disabled",
            'user_message': "✅ Questions will be drawn from all sections",
            'previous_value': previous
        }

    def get_stratify(self) -> Optional[StratifySettings]:
        return self._global_settings.stratify

    def set_question_source(self, source: str) -> Dict[str, Any]:
        """
        Set the URL or file path the question bank is loaded from.

        Args:
            source: http(s) URL or local file path

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(source, str):
            error_msg = f"Question source must be a string, got {type(source).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a URL or path, got {type(source).__name__}"
            }

        if not source.strip():
            error_msg = "Question source cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Question source cannot be empty"
            }

        self._question_source = source.strip()
        self.logger.info(f"Question source set to {self._question_source}")
        return {
            'success': True,
            'message': f"Question source set to {self._question_source}",
            'user_message': f"✅ Question source set to {self._question_source}"
        }

    def get_question_source(self) -> str:
        return self._question_source

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in effect.

        Args:
            config: Full configuration dictionary

        Returns:
            List of error messages for settings that were rejected
        """
        quiz_config = config.get('quiz') or {}
        if not isinstance(quiz_config, dict):
            error_msg = f"'quiz' section must be an object, got {type(quiz_config).__name__}"
            self.logger.warning(f"Ignoring configuration value: {error_msg}")
            return [error_msg]

        errors = []
        results = []

        if 'question_source' in quiz_config:
            results.append(self.set_question_source(quiz_config['question_source']))

        if quiz_config.get('default_question_count') is not None:
            results.append(self.set_question_count(quiz_config['default_question_count']))

        stratify = quiz_config.get('stratify')
        if stratify:
            if isinstance(stratify, dict):
                results.append(self.set_stratify(stratify.get('category'), stratify.get('count')))
            else:
                errors.append("'stratify' must be an object with 'category' and 'count'")

        errors.extend(result['error'] for result in results if not result['success'])
        for error in errors:
            self.logger.warning(f"Ignoring configuration value: {error}")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(question_count=self.DEFAULT_QUESTION_COUNT)
        self._question_source = self.DEFAULT_QUESTION_SOURCE
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        count = self._global_settings.question_count
        if (not isinstance(count, int) or
                count < self.MIN_QUESTION_COUNT or
                count > self.MAX_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {count}")

        stratify = self._global_settings.stratify
        if stratify is not None:
            if not stratify.category:
                validation_result["valid"] = False
                validation_result["issues"].append("Invalid stratify section: empty")
            if (not isinstance(stratify.count, int) or
                    stratify.count < self.MIN_STRATIFY_COUNT or
                    stratify.count > self.MAX_STRATIFY_COUNT):
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid stratify count: {stratify.count}")

        if not isinstance(self._question_source, str) or not self._question_source.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question source: {self._question_source}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        stratify = self._global_settings.stratify
        if stratify is None:
            stratify_str = "off"
        else:
            stratify_str = f"{stratify.count} from {stratify.category}"

        return (
            f"Quiz Settings:\n"
            f"• Questions: {self._global_settings.question_count}\n"
            f"• Stratified: {stratify_str}\n"
            f"• Source: {self._question_source}"
        )

    def get_user_friendly_validation_errors(self) -> List[str]:
        """
        Get user-friendly validation error messages for current settings.

        Returns:
            List of user-friendly error messages
        """
        user_friendly_errors = []

        for issue in self.validate_settings().get("issues", []):
            if "question count" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Question Count Issue: {issue}. "
                    f"Please set a value between {self.MIN_QUESTION_COUNT} and {self.MAX_QUESTION_COUNT}."
                )
            elif "stratify" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Section Sampling Issue: {issue}. "
                    "Please use /stratify or /stratify_off."
                )
            elif "question source" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Question Source Issue: {issue}. "
                    "Please check the 'question_source' value in config.json."
                )
            else:
                user_friendly_errors.append(f"❌ Configuration Issue: {issue}")

        return user_friendly_errors
