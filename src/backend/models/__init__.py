"""Document models module."""

from models.cosmos_documents import (
    DebateDocument,
    DebateStatus,
    QuestionType,
    ResponseDocument,
    SurveyDocument,
    SurveyStatus,
)

__all__ = [
    "DebateDocument",
    "DebateStatus",
    "QuestionType",
    "ResponseDocument",
    "SurveyDocument",
    "SurveyStatus",
]
