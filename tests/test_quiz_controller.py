"""
Unit tests for the QuizController state machine.
"""
import asyncio
import logging
import unittest
from unittest.mock import Mock

from trivia_quiz.models import Page, QuizSettings, TokenPolicy
from trivia_quiz.question_bank import TokenAcquisitionError
from trivia_quiz.quiz_controller import (
    CORRECT_FEEDBACK,
    InvalidTransitionError,
    NoQuestionsError,
    QuizController,
)
from trivia_quiz.session_store import SessionStore
from tests.test_fixtures import AsyncTestHelpers, ControlledQuestionBank, TriviaFixtures


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup for controller tests."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.bank = ControlledQuestionBank()
        self.store = SessionStore()
        self.controller = QuizController(self.bank, self.store)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def start_with(self, questions, count=None):
        """Run start() and resolve its fetch with the given questions."""
        task = asyncio.create_task(self.controller.start(count or len(questions)))
        await AsyncTestHelpers.wait_for_calls(self.bank, len(self.bank.calls) + 1)
        self.bank.resolve(len(self.bank.calls) - 1, questions)
        return await task


class TestQuizControllerStart(ControllerTestCase):
    """Test cases for starting a quiz."""

    async def test_start_seeds_store(self):
        """A resolved start lands on the first question."""
        questions = TriviaFixtures.create_sample_questions(5)

        applied = await self.start_with(questions)

        self.assertTrue(applied)
        self.assertEqual(self.controller.page, Page.QUESTION)
        self.assertEqual(self.store.state.current_question_index, 0)
        self.assertEqual(self.store.state.user_answers, [])
        self.assertIsNone(self.store.state.feedback)
        self.assertEqual(self.store.progress(), {'current': 1, 'total': 5})

    async def test_start_uses_default_count_and_filters(self):
        """Without a count the settings default and the type filter are used."""
        task = asyncio.create_task(self.controller.start())
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)

        count, filters, _ = self.bank.calls[0]
        self.assertEqual(count, 10)
        self.assertEqual(filters, {'type': 'multiple'})

        self.bank.resolve(0, TriviaFixtures.create_sample_questions(10))
        self.assertTrue(await task)

    async def test_start_stays_on_intro_until_fetch_resolves(self):
        """The page does not change while the fetch is pending."""
        task = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)

        self.assertTrue(self.controller.is_loading)
        self.assertEqual(self.controller.page, Page.INTRO)
        self.assertTrue(self.controller.snapshot().is_loading)

        self.bank.resolve(0, TriviaFixtures.create_sample_questions(3))
        await task
        self.assertFalse(self.controller.is_loading)

    async def test_start_failure_leaves_intro(self):
        """A failed fetch raises NoQuestionsError and keeps the intro page."""
        task = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)
        self.bank.fail(0, "Question bank unreachable")

        with self.assertRaises(NoQuestionsError) as ctx:
            await task

        self.assertIn("unreachable", str(ctx.exception))
        self.assertEqual(self.controller.page, Page.INTRO)
        self.assertIsNone(self.store.state.current_question_index)
        self.assertEqual(self.store.questions, ())
        self.assertFalse(self.controller.is_loading)

    async def test_start_failure_keeps_previous_session(self):
        """A failed restart does not disturb the quiz already in progress."""
        questions = TriviaFixtures.create_sample_questions(2)
        await self.start_with(questions)
        self.controller.submit_answer("Right 0")

        task = asyncio.create_task(self.controller.start(4))
        await AsyncTestHelpers.wait_for_calls(self.bank, 2)
        self.bank.fail(1)

        with self.assertRaises(NoQuestionsError):
            await task

        self.assertEqual(self.controller.page, Page.ANSWER)
        self.assertEqual(self.store.questions, questions)
        self.assertEqual(self.store.score(), 1)

    async def test_second_start_supersedes_first(self):
        """Only the most recent start may seed the question set."""
        first = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)
        second = asyncio.create_task(self.controller.start(2))
        await AsyncTestHelpers.wait_for_calls(self.bank, 2)

        self.bank.resolve(1, TriviaFixtures.create_sample_questions(2))
        self.assertTrue(await second)
        self.assertEqual(len(self.store.questions), 2)

        # The first fetch resolves late and must be discarded
        self.bank.resolve(0, TriviaFixtures.create_sample_questions(3))
        self.assertFalse(await first)
        self.assertEqual(len(self.store.questions), 2)
        self.assertEqual(self.store.progress(), {'current': 1, 'total': 2})

    async def test_stale_result_before_newer_resolves(self):
        """A stale result arriving first neither seeds nor ends loading."""
        first = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)
        second = asyncio.create_task(self.controller.start(2))
        await AsyncTestHelpers.wait_for_calls(self.bank, 2)

        self.bank.resolve(0, TriviaFixtures.create_sample_questions(3))
        self.assertFalse(await first)
        self.assertEqual(self.store.questions, ())
        self.assertTrue(self.controller.is_loading)

        self.bank.resolve(1, TriviaFixtures.create_sample_questions(2))
        self.assertTrue(await second)
        self.assertEqual(len(self.store.questions), 2)

    async def test_stale_failure_is_discarded(self):
        """A superseded start that fails does not raise."""
        first = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)
        second = asyncio.create_task(self.controller.start(2))
        await AsyncTestHelpers.wait_for_calls(self.bank, 2)

        self.bank.fail(0)
        self.assertFalse(await first)

        self.bank.resolve(1, TriviaFixtures.create_sample_questions(2))
        self.assertTrue(await second)

    async def test_start_rejects_invalid_count(self):
        with self.assertRaises(ValueError):
            await self.controller.start(0)
        with self.assertRaises(ValueError):
            await self.controller.start(-3)
        self.assertEqual(self.bank.calls, [])

    async def test_transitions_rejected_while_loading(self):
        """Answers cannot be recorded against a store that is being replaced."""
        await self.start_with(TriviaFixtures.create_sample_questions(2))

        task = asyncio.create_task(self.controller.start(2))
        await AsyncTestHelpers.wait_for_calls(self.bank, 2)

        with self.assertRaises(InvalidTransitionError):
            self.controller.submit_answer("Right 0")

        self.bank.resolve(1, TriviaFixtures.create_sample_questions(2))
        await task
        self.controller.submit_answer("Right 0")
        self.assertEqual(self.controller.page, Page.ANSWER)

    async def test_cancelled_start_clears_loading(self):
        task = asyncio.create_task(self.controller.start(3))
        await AsyncTestHelpers.wait_for_calls(self.bank, 1)

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertFalse(self.controller.is_loading)


class TestQuizControllerTransitions(ControllerTestCase):
    """Test cases for answering and advancing."""

    async def asyncSetUp(self):
        self.questions = TriviaFixtures.create_sample_questions(3)
        await self.start_with(self.questions)

    def test_submit_correct_answer(self):
        snapshot = self.controller.submit_answer("Right 0")

        self.assertEqual(snapshot.page, Page.ANSWER)
        self.assertEqual(snapshot.feedback, CORRECT_FEEDBACK)
        self.assertEqual(self.store.state.user_answers, ["Right 0"])
        self.assertEqual(self.store.score(), 1)

    def test_submit_wrong_answer_names_correct_answer(self):
        snapshot = self.controller.submit_answer("Wrong 0a")

        self.assertEqual(snapshot.feedback, "Too bad! The correct answer was: Right 0")
        self.assertEqual(self.store.score(), 0)

    def test_answer_count_invariants(self):
        """Answers recorded equal the index on question pages and index + 1 on answer pages."""
        for index in range(3):
            self.assertEqual(self.controller.page, Page.QUESTION)
            self.assertEqual(len(self.store.state.user_answers), self.store.state.current_question_index)

            self.controller.submit_answer(f"Right {index}")
            self.assertEqual(len(self.store.state.user_answers), self.store.state.current_question_index + 1)

            self.controller.advance()

        self.assertEqual(self.controller.page, Page.OUTRO)

    def test_submit_rejected_outside_question_page(self):
        self.controller.submit_answer("Right 0")

        with self.assertRaises(InvalidTransitionError):
            self.controller.submit_answer("Right 0")
        self.assertEqual(self.store.state.user_answers, ["Right 0"])

    def test_advance_rejected_outside_answer_page(self):
        with self.assertRaises(InvalidTransitionError):
            self.controller.advance()
        self.assertEqual(self.store.state.current_question_index, 0)

    def test_advance_moves_to_next_question(self):
        self.controller.submit_answer("Right 0")

        snapshot = self.controller.advance()

        self.assertEqual(snapshot.page, Page.QUESTION)
        self.assertEqual(snapshot.current_question_index, 1)
        self.assertIsNone(snapshot.feedback)
        self.assertEqual(snapshot.current_question, self.questions[1])

    def test_advance_after_last_question_ends_quiz(self):
        """Advancing past index 2 of 3 reaches the outro and keeps the index."""
        for index in range(3):
            self.controller.submit_answer(f"Wrong {index}a")
            self.controller.advance()

        self.assertEqual(self.controller.page, Page.OUTRO)
        self.assertEqual(self.store.state.current_question_index, 2)
        self.assertIsNone(self.controller.snapshot().feedback)

        with self.assertRaises(InvalidTransitionError):
            self.controller.advance()
        with self.assertRaises(InvalidTransitionError):
            self.controller.submit_answer("Right 2")

    async def test_restart_from_outro(self):
        for index in range(3):
            self.controller.submit_answer(f"Right {index}")
            self.controller.advance()

        await self.start_with(TriviaFixtures.create_sample_questions(2))

        self.assertEqual(self.controller.page, Page.QUESTION)
        self.assertEqual(self.store.state.user_answers, [])
        self.assertEqual(self.store.score(), 0)


class TestQuizControllerEndToEnd(ControllerTestCase):
    """Walk through a whole quiz."""

    async def test_two_question_quiz(self):
        questions = TriviaFixtures.create_sample_questions(2)
        self.assertTrue(await self.start_with(questions, count=2))

        self.controller.submit_answer(questions[0].correct_answer)
        self.assertEqual(self.store.score(), 1)
        self.assertEqual(self.controller.page, Page.ANSWER)

        self.controller.advance()
        self.assertEqual(self.controller.page, Page.QUESTION)
        self.assertEqual(self.store.state.current_question_index, 1)

        self.controller.submit_answer("Wrong 1b")
        self.assertEqual(self.store.score(), 1)

        self.controller.advance()
        self.assertEqual(self.controller.page, Page.OUTRO)
        self.assertEqual(self.controller.snapshot().score, 1)


class TestQuizControllerTokenPolicy(ControllerTestCase):
    """Test cases for the session token policies."""

    async def test_best_effort_starts_without_token(self):
        self.assertTrue(self.controller.can_start())

        self.assertTrue(await self.start_with(TriviaFixtures.create_sample_questions(2)))
        self.assertFalse(self.controller.snapshot().has_token)

    async def test_required_policy_blocks_start_without_token(self):
        self.controller.settings = QuizSettings(token_policy=TokenPolicy.REQUIRED)

        self.assertFalse(self.controller.can_start())
        self.assertFalse(self.controller.snapshot().can_start)
        with self.assertRaises(InvalidTransitionError):
            await self.controller.start(2)
        self.assertEqual(self.bank.calls, [])

    async def test_required_policy_allows_start_after_token(self):
        self.controller.settings = QuizSettings(token_policy=TokenPolicy.REQUIRED)

        await self.controller.acquire_token()

        self.assertTrue(self.controller.can_start())
        self.assertTrue(await self.start_with(TriviaFixtures.create_sample_questions(2)))

    async def test_token_failure_propagates_and_notifies(self):
        listener = Mock()
        self.controller.add_listener(listener)
        self.bank.token_error = "Token request failed"

        with self.assertRaises(TokenAcquisitionError):
            await self.controller.acquire_token()

        listener.assert_called_once()
        self.assertFalse(listener.call_args.args[0].has_token)

    async def test_token_survives_restart(self):
        await self.controller.acquire_token()
        await self.start_with(TriviaFixtures.create_sample_questions(2))
        await self.start_with(TriviaFixtures.create_sample_questions(2))

        self.assertEqual(self.bank.session_token, "controlled-token")
        self.assertEqual(self.bank.acquire_token.await_count, 1)


class TestQuizControllerListeners(ControllerTestCase):
    """Test cases for state change notifications."""

    async def test_listener_called_after_each_transition(self):
        pages = []
        self.controller.add_listener(lambda snapshot: pages.append((snapshot.page, snapshot.is_loading)))

        await self.start_with(TriviaFixtures.create_sample_questions(1))
        self.controller.submit_answer("Right 0")
        self.controller.advance()

        self.assertEqual(pages, [
            (Page.INTRO, True),
            (Page.QUESTION, False),
            (Page.ANSWER, False),
            (Page.OUTRO, False),
        ])

    async def test_failing_listener_does_not_break_transition(self):
        self.controller.add_listener(Mock(side_effect=RuntimeError("render failed")))

        await self.start_with(TriviaFixtures.create_sample_questions(1))

        self.assertEqual(self.controller.page, Page.QUESTION)

    async def test_remove_listener(self):
        listener = Mock()
        self.controller.add_listener(listener)
        self.controller.remove_listener(listener)

        await self.start_with(TriviaFixtures.create_sample_questions(1))

        listener.assert_not_called()


if __name__ == '__main__':
    unittest.main()
