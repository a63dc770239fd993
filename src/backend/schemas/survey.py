"""
Survey-related Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from models.cosmos_documents import (
    CHOICE_TYPES,
    QuestionAdminResult,
    QuestionDocument,
    SurveySettings,
    SurveyStatus,
    ThankYouScreen,
    WelcomeScreen,
)
from services.result_projector import SurveyResults


class QuestionInput(QuestionDocument):
    """A question as submitted by the creator."""

    title: str = Field(..., min_length=1, max_length=500)

    @model_validator(mode="after")
    def check_choices(self) -> "QuestionInput":
        if self.type in CHOICE_TYPES:
            ids = [choice.id for choice in self.properties.choices]
            if len(ids) < 2:
                raise ValueError(f"question {self.id} needs at least two choices")
            if len(set(ids)) != len(ids):
                raise ValueError(f"question {self.id} has duplicate choice ids")
        if self.properties.max_length is not None and self.properties.max_length > 5000:
            raise ValueError("max_length may not exceed 5000")
        return self


def _check_questions(questions: list[QuestionInput]) -> None:
    ids = [question.id for question in questions]
    if len(set(ids)) != len(ids):
        raise ValueError("question ids must be unique")

    by_id = {question.id: question for question in questions}
    for question in questions:
        condition = question.condition
        if condition is None:
            continue
        target = by_id.get(condition.question_id)
        if target is None or target.id == question.id:
            raise ValueError(f"question {question.id} has an invalid condition")
        if target.type not in CHOICE_TYPES or not set(condition.choice_ids) <= target.choice_ids():
            raise ValueError(f"question {question.id} must depend on choices of a choice question")


class SurveyCreate(BaseModel):
    """Schema for creating a survey."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    tags: list[str] = Field(default_factory=list, max_length=5)
    author_nickname: Optional[str] = Field(None, max_length=50)
    admin_password: str = Field(..., min_length=8, max_length=128)
    questions: list[QuestionInput] = Field(..., min_length=1, max_length=100)
    welcome_screen: WelcomeScreen = Field(default_factory=WelcomeScreen)
    thankyou_screen: ThankYouScreen = Field(default_factory=ThankYouScreen)
    settings: SurveySettings = Field(default_factory=SurveySettings)
    status: SurveyStatus = SurveyStatus.OPEN

    @model_validator(mode="after")
    def check_questions(self) -> "SurveyCreate":
        _check_questions(self.questions)
        return self


class SurveyUpdate(BaseModel):
    """Owner edits. Questions may only change before the first response."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    questions: Optional[list[QuestionInput]] = Field(None, min_length=1, max_length=100)
    welcome_screen: Optional[WelcomeScreen] = None
    thankyou_screen: Optional[ThankYouScreen] = None
    settings: Optional[SurveySettings] = None
    is_hidden: Optional[bool] = None

    @model_validator(mode="after")
    def check_questions(self) -> "SurveyUpdate":
        if self.questions is not None:
            _check_questions(self.questions)
        return self


class SurveyStatusUpdate(BaseModel):
    status: SurveyStatus


class ResponseSubmit(BaseModel):
    """Schema for submitting survey answers."""

    answers: list[dict[str, Any]] = Field(..., min_length=1)
    started_at: Optional[datetime] = None


class ResponseReceipt(BaseModel):
    success: bool = True
    response_code: str
    message: str = "Response recorded"


class ResponseCheck(BaseModel):
    has_responded: bool
    can_respond: bool


class SurveyCreated(BaseModel):
    id: str
    public_url: str
    admin_url: str
    admin_token: str


class SurveyDetail(BaseModel):
    """Public view of a survey (everything a respondent needs to fill it in)."""

    id: str
    title: str
    description: Optional[str] = None
    tags: list[str]
    author_nickname: str
    questions: list[QuestionDocument]
    welcome_screen: WelcomeScreen
    thankyou_screen: ThankYouScreen
    settings: SurveySettings
    status: SurveyStatus
    is_editable: bool
    response_count: int
    can_respond: bool
    created_at: datetime


class SurveyResultsResponse(BaseModel):
    survey_id: str
    results: Optional[SurveyResults] = None


class AdminSurveyResults(BaseModel):
    """Operator override for a survey: question id -> tallies."""

    questions: dict[str, QuestionAdminResult] = Field(..., min_length=1)
