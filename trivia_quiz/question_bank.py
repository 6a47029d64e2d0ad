"""
Client for the remote trivia question bank.
Acquires the session token, fetches question batches and normalizes records.
"""
import asyncio
import html
import logging
import random
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .models import Question, QuestionSet

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://opentdb.com"

# Messages for the non-zero response codes returned by the remote bank
RESPONSE_CODE_MESSAGES = {
    1: "No results: not enough questions for the requested amount and filters",
    2: "Invalid parameter sent to the question bank",
    3: "Session token not found",
    4: "Session token exhausted: all available questions were delivered",
    5: "Rate limit exceeded, wait a few seconds before requesting again",
}


class QuestionBankError(Exception):
    """Base exception for question bank errors."""
    pass


class TokenAcquisitionError(QuestionBankError):
    """Raised when the token endpoint fails or is unreachable."""
    pass


class FetchError(QuestionBankError):
    """Raised when a question batch cannot be fetched or decoded."""
    pass


def describe_response_code(code: Any) -> str:
    return RESPONSE_CODE_MESSAGES.get(code, f"Question bank returned response code {code}")


def create_question(record: Mapping[str, Any], rng: Optional[random.Random] = None) -> Question:
    """
    Normalize a raw question record into a Question.

    The correct answer is inserted into the incorrect answers at a uniformly
    random position, so each of the len(incorrect) + 1 slots is equally likely.

    Args:
        record: Raw record with 'question', 'correct_answer' and 'incorrect_answers'
        rng: Optional random source, module-level random is used if None

    Returns:
        Normalized Question

    Raises:
        ValueError: If the record is malformed
    """
    if not isinstance(record, Mapping):
        raise ValueError("Question record must be an object")

    for key in ("question", "correct_answer", "incorrect_answers"):
        if key not in record:
            raise ValueError(f"Question record missing '{key}' field")

    incorrect = record["incorrect_answers"]
    if not isinstance(incorrect, list):
        raise ValueError("'incorrect_answers' field must be an array")

    answers = [html.unescape(str(answer)) for answer in incorrect]
    correct_answer = html.unescape(str(record["correct_answer"]))

    rng = rng or random
    answers.insert(rng.randint(0, len(answers)), correct_answer)

    return Question(
        text=html.unescape(str(record["question"])),
        answers=tuple(answers),
        correct_answer=correct_answer,
    )


class QuestionBankClient:
    """
    Wraps the remote question bank API.

    The session token is cached for the lifetime of the client, which is
    meant to be shared by the whole process. Once set it is never reset.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the question bank client.

        Args:
            base_url: Root URL of the question bank
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client (mainly for tests)
            rng: Optional random source for answer shuffling
        """
        self.base_url = base_url.rstrip("/")
        self._client = client if client is not None else httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            follow_redirects=True,
            timeout=timeout,
        )
        self._rng = rng or random.Random()
        self._session_token: Optional[str] = None
        self._token_lock = asyncio.Lock()

    @property
    def session_token(self) -> Optional[str]:
        return self._session_token

    @property
    def has_token(self) -> bool:
        return self._session_token is not None

    async def acquire_token(self) -> str:
        """
        Return the session token, requesting it once if not cached yet.

        Raises:
            TokenAcquisitionError: If the request fails or the bank reports a failure
        """
        if self._session_token is not None:
            return self._session_token

        async with self._token_lock:
            # Another caller may have filled the cache while we waited
            if self._session_token is not None:
                return self._session_token

            payload = await self._get_json(
                f"{self.base_url}/api_token.php",
                {"command": "request"},
                TokenAcquisitionError,
            )

            code = payload.get("response_code")
            if code != 0:
                message = payload.get("response_message") or describe_response_code(code)
                logger.warning(
                    f"Token request rejected: {message}",
                    extra={
                        'event_type': 'token_rejected',
                        'response_code': code,
                        'timestamp': time.time()
                    }
                )
                raise TokenAcquisitionError(message)

            token = payload.get("token")
            if not token:
                raise TokenAcquisitionError("Token response did not contain a token")

            self._session_token = token
            logger.info(
                "Session token acquired",
                extra={'event_type': 'token_acquired', 'timestamp': time.time()}
            )
            return token

    async def fetch_batch(self, count: int, filters: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
        """
        Fetch a batch of raw question records.

        Args:
            count: Number of questions to request
            filters: Extra query parameters such as type, category or difficulty

        Returns:
            List of raw question records, not normalized

        Raises:
            FetchError: On transport failure, non-2xx status or non-zero response code
        """
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise ValueError(f"Question count must be a positive integer, got {count!r}")

        params: Dict[str, Any] = {"amount": count}
        for key, value in (filters or {}).items():
            params[key] = value
        if self._session_token is not None:
            params["token"] = self._session_token

        payload = await self._get_json(f"{self.base_url}/api.php", params, FetchError)

        code = payload.get("response_code")
        if code != 0:
            message = describe_response_code(code)
            logger.warning(
                f"Question batch rejected: {message}",
                extra={
                    'event_type': 'fetch_rejected',
                    'response_code': code,
                    'amount': count,
                    'timestamp': time.time()
                }
            )
            raise FetchError(message)

        results = payload.get("results")
        if not isinstance(results, list):
            raise FetchError("Question bank response did not contain a results array")

        logger.debug(f"Fetched {len(results)} question records")
        return results

    async def fetch_and_normalize(self, count: int, filters: Optional[Mapping[str, str]] = None) -> QuestionSet:
        """
        Fetch a batch and normalize every record into a QuestionSet.

        All-or-nothing: a malformed record fails the whole batch, so callers
        never see a partially built set.

        Raises:
            FetchError: If the fetch fails, no questions arrive or a record is malformed
        """
        records = await self.fetch_batch(count, filters)
        if not records:
            raise FetchError("Question bank returned no questions")

        questions = []
        for index, record in enumerate(records):
            try:
                questions.append(create_question(record, self._rng))
            except ValueError as e:
                raise FetchError(f"Malformed question record {index}: {e}") from e

        return tuple(questions)

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._client.aclose()

    async def _get_json(self, url: str, params: Mapping[str, Any], error_type: type) -> Dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Question bank returned HTTP {e.response.status_code} for {url}")
            raise error_type(f"Question bank returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Question bank request to {url} failed: {e}")
            raise error_type(f"Question bank unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from question bank at {url}: {e}")
            raise error_type("Question bank returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise error_type("Question bank returned an unexpected payload")
        return payload
