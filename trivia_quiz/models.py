"""
Core data models for the trivia quiz.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Page(Enum):
    """States of the quiz state machine."""
    INTRO = "intro"
    QUESTION = "question"
    ANSWER = "answer"
    OUTRO = "outro"


class TokenPolicy(Enum):
    """Whether starting a quiz waits for a session token."""
    BEST_EFFORT = "best_effort"
    REQUIRED = "required"


@dataclass(frozen=True)
class Question:
    """A single multiple-choice question, immutable once built."""
    text: str
    answers: Tuple[str, ...]
    correct_answer: str

    def __post_init__(self):
        if len(self.answers) < 2:
            raise ValueError("A question needs at least two answers")
        if len(set(self.answers)) != len(self.answers):
            raise ValueError(f"Duplicate answers in question: {self.text!r}")
        if self.correct_answer not in self.answers:
            raise ValueError(f"Correct answer missing from answers: {self.text!r}")

    def is_correct(self, answer: str) -> bool:
        return answer == self.correct_answer


# The ordered batch of questions for one quiz, replaced wholesale per session.
QuestionSet = Tuple[Question, ...]


@dataclass
class QuizState:
    """Mutable quiz session state, recreated at the start of every quiz."""
    page: Page = Page.INTRO
    current_question_index: Optional[int] = None
    user_answers: List[str] = field(default_factory=list)
    feedback: Optional[str] = None


@dataclass(frozen=True)
class QuizSnapshot:
    """Read-only view of the session handed to renderers."""
    page: Page
    current_question_index: Optional[int]
    current_question: Optional[Question]
    user_answers: Tuple[str, ...]
    feedback: Optional[str]
    score: int
    progress: Dict[str, int]
    is_loading: bool = False
    has_token: bool = False
    can_start: bool = True


@dataclass
class QuizSettings:
    """Configuration settings for fetching and running a quiz."""
    question_count: int = 10
    question_type: str = "multiple"
    category: Optional[int] = None
    difficulty: Optional[str] = None
    token_policy: TokenPolicy = TokenPolicy.BEST_EFFORT

    def filters(self) -> Dict[str, str]:
        """Query filters sent with every question batch request."""
        filters = {'type': self.question_type}
        if self.category is not None:
            filters['category'] = str(self.category)
        if self.difficulty:
            filters['difficulty'] = self.difficulty
        return filters
