"""Schemas module initialization."""

from schemas.debate import DebateCreate, DebateDetail, DebateUpdate, OpinionCreate, VoteCreate, VoteResult
from schemas.survey import ResponseReceipt, ResponseSubmit, SurveyCreate, SurveyDetail, SurveyUpdate

__all__ = [
    "DebateCreate",
    "DebateDetail",
    "DebateUpdate",
    "OpinionCreate",
    "VoteCreate",
    "VoteResult",
    "SurveyCreate",
    "SurveyDetail",
    "SurveyUpdate",
    "ResponseSubmit",
    "ResponseReceipt",
]
