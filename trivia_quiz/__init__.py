"""
Trivia quiz core: question bank client, session store and quiz controller.
"""
from .models import Page, Question, QuizSettings, QuizSnapshot, QuizState, TokenPolicy
from .question_bank import FetchError, QuestionBankClient, TokenAcquisitionError
from .quiz_controller import InvalidTransitionError, NoQuestionsError, QuizController
from .session_store import SessionStore

__all__ = [
    "FetchError",
    "InvalidTransitionError",
    "NoQuestionsError",
    "Page",
    "Question",
    "QuestionBankClient",
    "QuizController",
    "QuizSettings",
    "QuizSnapshot",
    "QuizState",
    "SessionStore",
    "TokenAcquisitionError",
    "TokenPolicy",
]
