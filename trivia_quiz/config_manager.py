"""
Configuration manager for trivia quiz settings and question bank parameters.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import QuizSettings, TokenPolicy
from .question_bank import DEFAULT_BASE_URL


class ConfigManager:
    """Manages quiz settings and question bank connection parameters."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_QUESTION_TYPE = "multiple"
    DEFAULT_REQUEST_TIMEOUT = 10.0
    DEFAULT_BASE_URL = DEFAULT_BASE_URL

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 50  # Largest batch the question bank serves
    MIN_REQUEST_TIMEOUT = 1.0
    MAX_REQUEST_TIMEOUT = 60.0
    QUESTION_TYPES = ("multiple", "boolean")
    DIFFICULTIES = ("easy", "medium", "hard")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._base_url = self.DEFAULT_BASE_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the QuizSettings so callers cannot change the globals
        """
        return QuizSettings(
            question_count=self._global_settings.question_count,
            question_type=self._global_settings.question_type,
            category=self._global_settings.category,
            difficulty=self._global_settings.difficulty,
            token_policy=self._global_settings.token_policy
        )

    def get_filters(self) -> Dict[str, str]:
        return self._global_settings.filters()

    def validate_question_count(self, count: int) -> Dict[str, Any]:
        """
        Check a question count against the bank's limits without storing it.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(count, int) or isinstance(count, bool):
            return self._failure(
                f"Question count must be an integer, got {type(count).__name__}",
                f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            )

        if count < self.MIN_QUESTION_COUNT:
            return self._failure(
                f"Question count must be at least {self.MIN_QUESTION_COUNT}",
                f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            )

        if count > self.MAX_QUESTION_COUNT:
            return self._failure(
                f"Question count cannot exceed {self.MAX_QUESTION_COUNT}",
                f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            )

        return {'success': True, 'message': f"Question count {count} is valid", 'user_message': ""}

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """Set the number of questions fetched for each quiz."""
        result = self.validate_question_count(count)
        if not result['success']:
            return result

        self._global_settings.question_count = count
        return self._success(f"Question count set to {count}", f"✅ Question count set to {count}")

    def get_question_count(self) -> int:
        return self._global_settings.question_count

    def set_question_type(self, question_type: str) -> Dict[str, Any]:
        """
        Set the kind of questions requested.

        Args:
            question_type: 'multiple' for multiple choice or 'boolean' for true/false
        """
        if question_type not in self.QUESTION_TYPES:
            return self._failure(
                f"Question type must be one of {', '.join(self.QUESTION_TYPES)}, got {question_type!r}",
                f"❌ Unknown question type: choose {' or '.join(self.QUESTION_TYPES)}"
            )

        self._global_settings.question_type = question_type
        return self._success(f"Question type set to {question_type}", f"✅ Questions will be {question_type} choice")

    def set_category(self, category: Optional[int]) -> Dict[str, Any]:
        """
        Restrict questions to one category, or None for any category.

        Args:
            category: Numeric category identifier of the question bank
        """
        if category is not None and (not isinstance(category, int) or isinstance(category, bool) or category < 1):
            return self._failure(
                f"Category must be a positive integer, got {category!r}",
                "❌ Invalid category: Expected a positive number"
            )

        self._global_settings.category = category
        label = "any category" if category is None else f"category {category}"
        return self._success(f"Category set to {label}", f"✅ Questions will come from {label}")

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """
        Restrict questions to one difficulty, or None for any difficulty.
        """
        if difficulty is not None:
            difficulty = difficulty.lower() if isinstance(difficulty, str) else difficulty
            if difficulty not in self.DIFFICULTIES:
                return self._failure(
                    f"Difficulty must be one of {', '.join(self.DIFFICULTIES)}, got {difficulty!r}",
                    f"❌ Unknown difficulty: choose {', '.join(self.DIFFICULTIES)}"
                )

        self._global_settings.difficulty = difficulty
        label = difficulty or "any"
        return self._success(f"Difficulty set to {label}", f"✅ Difficulty set to {label}")

    def set_token_policy(self, policy: Any) -> Dict[str, Any]:
        """
        Set whether starting a quiz requires a session token.

        Args:
            policy: TokenPolicy member or its string value
        """
        try:
            policy = TokenPolicy(policy)
        except ValueError:
            values = ", ".join(p.value for p in TokenPolicy)
            return self._failure(
                f"Token policy must be one of {values}, got {policy!r}",
                f"❌ Unknown token policy: choose {values}"
            )

        self._global_settings.token_policy = policy
        return self._success(f"Token policy set to {policy.value}", f"✅ Token policy set to {policy.value}")

    def set_base_url(self, base_url: str) -> Dict[str, Any]:
        if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
            return self._failure(
                f"Base URL must be an http(s) URL, got {base_url!r}",
                "❌ Invalid question bank URL"
            )

        self._base_url = base_url.rstrip("/")
        return self._success(f"Base URL set to {self._base_url}", f"✅ Question bank set to {self._base_url}")

    def get_base_url(self) -> str:
        return self._base_url

    def set_request_timeout(self, timeout: float) -> Dict[str, Any]:
        """
        Set the network timeout used for question bank requests.

        Args:
            timeout: Timeout in seconds
        """
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool):
            return self._failure(
                f"Request timeout must be a number, got {type(timeout).__name__}",
                f"❌ Invalid input: Expected a number, got {type(timeout).__name__}"
            )

        if not self.MIN_REQUEST_TIMEOUT <= timeout <= self.MAX_REQUEST_TIMEOUT:
            return self._failure(
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} and {self.MAX_REQUEST_TIMEOUT} seconds",
                f"❌ Timeout out of range: use {self.MIN_REQUEST_TIMEOUT:g}-{self.MAX_REQUEST_TIMEOUT:g} seconds"
            )

        self._request_timeout = float(timeout)
        return self._success(f"Request timeout set to {timeout} seconds", f"✅ Timeout set to {timeout} seconds")

    def get_request_timeout(self) -> float:
        return self._request_timeout

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' and 'api' sections of a configuration dictionary.

        Invalid entries are logged and skipped, keeping the current values.

        Returns:
            List of error messages for entries that were rejected
        """
        quiz_config = config.get('quiz', {}) or {}
        api_config = config.get('api', {}) or {}

        setters = [
            (quiz_config, 'default_question_count', self.set_question_count),
            (quiz_config, 'question_type', self.set_question_type),
            (quiz_config, 'category', self.set_category),
            (quiz_config, 'difficulty', self.set_difficulty),
            (quiz_config, 'token_policy', self.set_token_policy),
            (api_config, 'base_url', self.set_base_url),
            (api_config, 'request_timeout', self.set_request_timeout),
        ]

        errors = []
        for section, key, setter in setters:
            if key not in section:
                continue
            result = setter(section[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid configuration entries")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings()
        self._base_url = self.DEFAULT_BASE_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        issues = []
        settings = self._global_settings

        if (not isinstance(settings.question_count, int) or
                not self.MIN_QUESTION_COUNT <= settings.question_count <= self.MAX_QUESTION_COUNT):
            issues.append(f"Invalid question count: {settings.question_count}")

        if settings.question_type not in self.QUESTION_TYPES:
            issues.append(f"Invalid question type: {settings.question_type}")

        if settings.difficulty is not None and settings.difficulty not in self.DIFFICULTIES:
            issues.append(f"Invalid difficulty: {settings.difficulty}")

        if not isinstance(settings.token_policy, TokenPolicy):
            issues.append(f"Invalid token policy: {settings.token_policy}")

        if not self.MIN_REQUEST_TIMEOUT <= self._request_timeout <= self.MAX_REQUEST_TIMEOUT:
            issues.append(f"Invalid request timeout: {self._request_timeout}")

        return {
            "valid": not issues,
            "issues": issues
        }

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        category = str(settings.category) if settings.category is not None else "any"
        return (
            f"Quiz Settings:\n"
            f"• Questions: {settings.question_count}\n"
            f"• Type: {settings.question_type}\n"
            f"• Category: {category}\n"
            f"• Difficulty: {settings.difficulty or 'any'}\n"
            f"• Token policy: {settings.token_policy.value}\n"
            f"• Question bank: {self._base_url}"
        )

    def _success(self, message: str, user_message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {
            'success': True,
            'message': message,
            'user_message': user_message
        }

    def _failure(self, error: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error)
        return {
            'success': False,
            'error': error,
            'user_message': user_message
        }
