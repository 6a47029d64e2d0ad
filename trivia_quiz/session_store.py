"""
Session store holding the quiz state and the question set for one quiz.
"""
import logging
from typing import Dict, Optional

from .models import Page, Question, QuestionSet, QuizSnapshot, QuizState


class SessionStore:
    """
    Owns the per-quiz state and exposes read-only derivations of it.

    Query methods never mutate anything. Mutation is done by the quiz
    controller, either through reset() or by updating ``state`` directly.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.state = QuizState()
        self.questions: QuestionSet = ()

    def reset(self, questions: QuestionSet) -> None:
        """
        Replace the state and the question set in one step.

        Args:
            questions: The new question set, positioned on its first question
        """
        self.questions = tuple(questions)
        self.state = QuizState(
            page=Page.QUESTION,
            current_question_index=0,
            user_answers=[],
            feedback=None
        )
        self.logger.debug(f"Store reset with {len(self.questions)} questions")

    def question(self, index: Optional[int]) -> Optional[Question]:
        if index is None or not 0 <= index < len(self.questions):
            return None
        return self.questions[index]

    def current_question(self) -> Optional[Question]:
        """Get the question at the current index, or None if there is none."""
        return self.question(self.state.current_question_index)

    def is_last_question(self) -> bool:
        index = self.state.current_question_index
        return index is not None and index == len(self.questions) - 1

    def progress(self) -> Dict[str, int]:
        """
        Get display progress.

        Returns:
            Dictionary with 1-based 'current' and 'total' question counts
        """
        index = self.state.current_question_index
        return {
            'current': (index + 1) if index is not None else 0,
            'total': len(self.questions)
        }

    def score(self) -> int:
        """Count answers matching their question's correct answer, recomputed on every call."""
        score = 0
        for index, answer in enumerate(self.state.user_answers):
            question = self.question(index)
            if question is not None and question.is_correct(answer):
                score += 1
        return score

    def snapshot(self, is_loading: bool = False, has_token: bool = False, can_start: bool = True) -> QuizSnapshot:
        """
        Build an immutable snapshot of the session for renderers.

        Args:
            is_loading: Whether a quiz start is waiting on the network
            has_token: Whether a session token is cached
            can_start: Whether the start control should be enabled
        """
        return QuizSnapshot(
            page=self.state.page,
            current_question_index=self.state.current_question_index,
            current_question=self.current_question(),
            user_answers=tuple(self.state.user_answers),
            feedback=self.state.feedback,
            score=self.score(),
            progress=self.progress(),
            is_loading=is_loading,
            has_token=has_token,
            can_start=can_start
        )
