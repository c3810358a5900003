from skillbase.answer.generator import AnswerGenerator, AnswerResult
from skillbase.answer.service import AnswerResponse, AnswerService

__all__ = [
    "AnswerGenerator",
    "AnswerResponse",
    "AnswerResult",
    "AnswerService",
]
