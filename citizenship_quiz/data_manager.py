"""
Data manager for loading the question bank and validating its structure.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from .models import OPTION_COUNT, Question, QuestionPool


class DataManagerError(Exception):
    """Base exception for question loading errors."""
    pass


class LoadError(DataManagerError):
    """Raised when the question source cannot be fetched or read."""
    pass


class ValidationError(DataManagerError):
    """Raised when question data does not match the required shape."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("Invalid question data: " + "; ".join(self.issues))


REQUIRED_FIELDS = ("question", "section", "options", "answer")


def _validate_record(index: int, record: Any) -> List[str]:
    """Return every rule a single raw record breaks."""
    if not isinstance(record, dict):
        return [f"Question {index} must be an object, got {type(record).__name__}"]

    issues = []
    for field_name in REQUIRED_FIELDS:
        if field_name not in record:
            issues.append(f"Question {index} missing '{field_name}' field")

    for field_name in ("question", "section"):
        if field_name not in record:
            continue
        value = record[field_name]
        if not isinstance(value, str):
            issues.append(f"Question {index} '{field_name}' field must be a string")
        elif not value:
            issues.append(f"Question {index} '{field_name}' field cannot be empty")

    if "options" in record:
        options = record["options"]
        if not isinstance(options, list):
            issues.append(f"Question {index} 'options' field must be an array")
        else:
            if len(options) != OPTION_COUNT:
                issues.append(
                    f"Question {index} 'options' must have exactly {OPTION_COUNT} entries, got {len(options)}"
                )
            for position, option in enumerate(options):
                if not isinstance(option, str):
                    issues.append(f"Question {index} option {position} must be a string")
                elif not option:
                    issues.append(f"Question {index} option {position} cannot be empty")

    if "answer" in record:
        answer = record["answer"]
        answer_index = _as_index(answer)
        if answer_index is None:
            issues.append(f"Question {index} 'answer' field must be an integer")
        elif not 0 <= answer_index < OPTION_COUNT:
            issues.append(
                f"Question {index} 'answer' must be between 0 and {OPTION_COUNT - 1}, got {answer}"
            )

    return issues


def _as_index(value: Any) -> Optional[int]:
    # bool is an int subclass but never a valid answer
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def validate_questions(raw: Any) -> QuestionPool:
    """
    Validate raw question data and convert it into a question pool.

    Expected structure:
    [
        {
            "question": str,
            "section": str,
            "options": [str, str, str, str],
            "answer": int  # 0-3
        }
    ]

    Args:
        raw: Parsed JSON data of unknown shape

    Returns:
        Tuple of Question objects in source order

    Raises:
        ValidationError: If any record breaks a rule; no partial pool is returned
    """
    if not isinstance(raw, list):
        raise ValidationError([f"Question data must be an array, got {type(raw).__name__}"])

    issues = []
    for index, record in enumerate(raw):
        issues.extend(_validate_record(index, record))

    if issues:
        raise ValidationError(issues)

    return tuple(
        Question(
            text=record["question"],
            section=record["section"],
            options=tuple(record["options"]),
            correct_index=_as_index(record["answer"])
        )
        for record in raw
    )


class DataManager:
    """Loads the question bank from a URL or local file and caches the pool."""

    DEFAULT_QUESTION_SOURCE = "./questions.json"
    MAX_SOURCE_SIZE = 10 * 1024 * 1024  # 10MB limit

    def __init__(self, question_source: str = DEFAULT_QUESTION_SOURCE, timeout: float = 10.0):
        """
        Initialize DataManager.

        Args:
            question_source: URL or file path of the question bank
            timeout: Total timeout in seconds for HTTP fetches
        """
        self.question_source = question_source
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []
        self._pools: Dict[str, QuestionPool] = {}
        self._active_source: Optional[str] = None

    async def load_pool(self, source: Optional[str] = None, refresh: bool = False) -> QuestionPool:
        """
        Acquire the question bank and run it through the validator.

        Args:
            source: URL or file path, defaults to the configured source
            refresh: Fetch again even if this source was already loaded

        Returns:
            The validated question pool

        Raises:
            LoadError: If the source could not be fetched, read or parsed
            ValidationError: If the data does not match the question schema
        """
        source = source or self.question_source

        if not refresh and source in self._pools:
            self._active_source = source
            return self._pools[source]

        try:
            if self._is_remote(source):
                raw = await self._fetch_remote(source)
            else:
                raw = self._read_local(Path(source))
            pool = validate_questions(raw)
        except DataManagerError as e:
            self.load_errors.append(f"{source}: {e}")
            self.logger.error(f"Failed to load questions from {source}: {e}")
            raise

        self._pools[source] = pool
        self._active_source = source
        self.load_errors.clear()
        self.logger.info(f"Loaded {len(pool)} questions from {source}")
        return pool

    @staticmethod
    def _is_remote(source: str) -> bool:
        return source.startswith(("http://", "https://"))

    async def _fetch_remote(self, url: str) -> Any:
        """Issue one GET request and return the parsed JSON body."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status < 200 or response.status >= 300:
                        raise LoadError(f"Failed to load questions: HTTP error! Status: {response.status}")
                    body = await response.read()
        except aiohttp.ClientError as e:
            raise LoadError(f"Failed to load questions: {e}") from e
        except asyncio.TimeoutError as e:
            raise LoadError(f"Failed to load questions: request timed out after {self.timeout}s") from e

        return self._parse_json(body)

    def _read_local(self, file_path: Path) -> Any:
        """Read and parse a local JSON question file."""
        try:
            file_size = file_path.stat().st_size
            if file_size > self.MAX_SOURCE_SIZE:
                raise LoadError(
                    f"Failed to load questions: file too large ({file_size / 1024 / 1024:.1f}MB). "
                    f"Maximum size is {self.MAX_SOURCE_SIZE / 1024 / 1024}MB"
                )
            with open(file_path, 'rb') as f:
                body = f.read()
        except FileNotFoundError as e:
            raise LoadError(f"Failed to load questions: file not found: {file_path}") from e
        except PermissionError as e:
            raise LoadError(f"Failed to load questions: permission denied: {file_path}") from e
        except OSError as e:
            raise LoadError(f"Failed to load questions: {e}") from e

        return self._parse_json(body)

    @staticmethod
    def _parse_json(body: bytes) -> Any:
        # json detects UTF-8, UTF-16 and UTF-32 from the raw bytes
        try:
            return json.loads(body)
        except UnicodeDecodeError as e:
            raise LoadError(f"Failed to load questions: body is not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise LoadError(f"Failed to load questions: invalid JSON: {e}") from e

    def get_pool(self) -> Optional[QuestionPool]:
        """
        Get the most recently loaded pool.

        Returns:
            The pool, or None if nothing has been loaded
        """
        if self._active_source is None:
            return None
        return self._pools[self._active_source]

    def has_pool(self) -> bool:
        return self._active_source is not None

    def get_question_count(self) -> int:
        pool = self.get_pool()
        return len(pool) if pool else 0

    def get_sections(self) -> Dict[str, int]:
        """
        Count questions per section label.

        Returns:
            Mapping of section label to question count, in first-seen order
        """
        sections: Dict[str, int] = {}
        for question in self.get_pool() or ():
            sections[question.section] = sections.get(question.section, 0) + 1
        return sections

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the loading state for status output.

        Returns:
            Dictionary with pool statistics and recent errors
        """
        return {
            'source': self._active_source or self.question_source,
            'loaded': self.has_pool(),
            'total_questions': self.get_question_count(),
            'sections': self.get_sections(),
            'has_errors': self.has_load_errors(),
            'errors': self.get_load_errors()
        }
