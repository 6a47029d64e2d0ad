"""
Quiz controller for the trivia quiz.
Drives the intro -> question -> answer -> outro state machine over a session store.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional

from .models import Page, QuizSettings, QuizSnapshot, TokenPolicy
from .question_bank import FetchError, QuestionBankClient
from .session_store import SessionStore

CORRECT_FEEDBACK = "You got it!"
INCORRECT_FEEDBACK = "Too bad! The correct answer was: {answer}"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InvalidTransitionError(QuizControllerError):
    """Raised when a transition is invoked from a state that does not permit it."""
    pass


class NoQuestionsError(QuizControllerError):
    """Raised when a quiz cannot start because its questions could not be fetched."""
    pass


class QuizController:
    """
    Orchestrates one quiz session.

    Transitions are synchronous except start(), which suspends on the
    question fetch. A generation counter makes sure only the most recent
    start() may seed the store; older fetches that resolve late are dropped.
    """

    def __init__(
        self,
        question_bank: QuestionBankClient,
        store: Optional[SessionStore] = None,
        settings: Optional[QuizSettings] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            question_bank: Shared client holding the process-lifetime token
            store: Session store to drive, a fresh one is created if None
            settings: Quiz settings, defaults are used if None
        """
        self.logger = logging.getLogger(__name__)
        self.question_bank = question_bank
        self.store = store or SessionStore()
        self.settings = settings or QuizSettings()

        self._generation = 0
        self._pending_generation: Optional[int] = None
        self._listeners: List[Callable[[QuizSnapshot], None]] = []

    # ------------------------------------------------------------------
    # Queries

    @property
    def page(self) -> Page:
        return self.store.state.page

    @property
    def is_loading(self) -> bool:
        return self._pending_generation is not None

    def can_start(self) -> bool:
        """Check whether the token policy allows starting a quiz right now."""
        if self.settings.token_policy is TokenPolicy.REQUIRED:
            return self.question_bank.has_token
        return True

    def snapshot(self) -> QuizSnapshot:
        return self.store.snapshot(
            is_loading=self.is_loading,
            has_token=self.question_bank.has_token,
            can_start=self.can_start()
        )

    # ------------------------------------------------------------------
    # Listeners

    def add_listener(self, callback: Callable[[QuizSnapshot], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[QuizSnapshot], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"State listener {callback!r} failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Transitions

    async def acquire_token(self) -> str:
        """
        Fetch the session token through the question bank, best effort.

        Raises:
            TokenAcquisitionError: Propagated from the client after listeners are notified
        """
        try:
            return await self.question_bank.acquire_token()
        finally:
            self._notify()

    async def start(self, requested_count: Optional[int] = None) -> bool:
        """
        Start a new quiz.

        Valid from any state. The store is only reset once the question
        fetch resolves, so a failed start leaves the session untouched.

        Args:
            requested_count: Number of questions, settings default if None

        Returns:
            True if this call seeded the session, False if a newer start superseded it

        Raises:
            ValueError: If the requested count is not a positive integer
            InvalidTransitionError: If the token policy forbids starting yet
            NoQuestionsError: If the fetch fails and this is still the latest start
        """
        count = self.settings.question_count if requested_count is None else requested_count
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise ValueError(f"Question count must be a positive integer, got {count!r}")

        if not self.can_start():
            self._reject("start", "a session token is required before starting")

        self._generation += 1
        generation = self._generation
        self._pending_generation = generation
        self._log_transition(self.page, "loading", generation)
        self._notify()

        try:
            questions = await self.question_bank.fetch_and_normalize(count, self.settings.filters())
        except FetchError as e:
            if generation != self._generation:
                self._log_superseded(generation, "failure")
                return False
            self._pending_generation = None
            self.logger.error(
                f"Quiz start failed: {e}",
                extra={
                    'event_type': 'quiz_start_failed',
                    'generation': generation,
                    'requested_count': count,
                    'timestamp': time.time()
                }
            )
            self._notify()
            raise NoQuestionsError(str(e)) from e
        except (Exception, asyncio.CancelledError):
            if generation == self._generation:
                self._pending_generation = None
                self._notify()
            raise

        if generation != self._generation:
            self._log_superseded(generation, "result")
            return False

        self._pending_generation = None
        previous_page = self.page
        self.store.reset(questions)
        self._log_transition(previous_page, self.page, generation)
        self._notify()
        return True

    def submit_answer(self, selected: str) -> QuizSnapshot:
        """
        Record an answer for the current question and show feedback.

        Raises:
            InvalidTransitionError: If the session is not on a question page
        """
        self._require_page(Page.QUESTION, "submit_answer")

        question = self.store.current_question()
        if question is None:
            self._reject("submit_answer", "there is no current question")

        state = self.store.state
        state.user_answers.append(selected)
        if question.is_correct(selected):
            state.feedback = CORRECT_FEEDBACK
        else:
            state.feedback = INCORRECT_FEEDBACK.format(answer=question.correct_answer)
        state.page = Page.ANSWER

        self._log_transition(Page.QUESTION, Page.ANSWER, self._generation)
        self._notify()
        return self.snapshot()

    def advance(self) -> QuizSnapshot:
        """
        Move past the answer feedback to the next question or the outro.

        On the last question the index is left unchanged and the quiz ends.

        Raises:
            InvalidTransitionError: If the session is not on an answer page
        """
        self._require_page(Page.ANSWER, "advance")

        state = self.store.state
        state.feedback = None
        if self.store.is_last_question():
            state.page = Page.OUTRO
            self.logger.info(
                f"Quiz completed with score {self.store.score()}/{len(self.store.questions)}",
                extra={
                    'event_type': 'quiz_completed',
                    'score': self.store.score(),
                    'total': len(self.store.questions),
                    'timestamp': time.time()
                }
            )
        else:
            state.current_question_index += 1
            state.page = Page.QUESTION

        self._log_transition(Page.ANSWER, state.page, self._generation)
        self._notify()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Helpers

    def _require_page(self, expected: Page, operation: str) -> None:
        if self.is_loading:
            self._reject(operation, "a new quiz is loading")
        if self.page is not expected:
            self._reject(operation, f"page is '{self.page.value}', expected '{expected.value}'")

    def _reject(self, operation: str, reason: str) -> None:
        message = f"Cannot {operation}: {reason}"
        self.logger.error(
            message,
            extra={
                'event_type': 'invalid_transition',
                'operation': operation,
                'page': self.page.value,
                'timestamp': time.time()
            }
        )
        raise InvalidTransitionError(message)

    def _log_transition(self, from_page, to_page, generation: int) -> None:
        from_name = from_page.value if isinstance(from_page, Page) else from_page
        to_name = to_page.value if isinstance(to_page, Page) else to_page
        self.logger.info(
            f"Quiz transition: {from_name} -> {to_name}",
            extra={
                'event_type': 'quiz_transition',
                'from_state': from_name,
                'to_state': to_name,
                'generation': generation,
                'timestamp': time.time()
            }
        )

    def _log_superseded(self, generation: int, outcome: str) -> None:
        self.logger.info(
            f"Discarding stale start {generation} {outcome}, latest is {self._generation}",
            extra={
                'event_type': 'quiz_start_superseded',
                'generation': generation,
                'latest_generation': self._generation,
                'timestamp': time.time()
            }
        )
