"""
Debate-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.clock import ensure_aware
from models.cosmos_documents import DebateCategory, DebateStatus
from services.result_projector import DebateResults, OpinionView


class DebateSettingsInput(BaseModel):
    allow_multiple_choice: bool = False
    show_results_before_end: bool = True
    allow_anonymous_vote: bool = True
    allow_opinion: bool = True
    max_votes_per_ip: int = Field(1, ge=1, le=100)


class DebateCreate(BaseModel):
    """Schema for creating a debate."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: DebateCategory = DebateCategory.GENERAL
    tags: list[str] = Field(default_factory=list, max_length=5)
    author_nickname: Optional[str] = Field(None, max_length=50)
    admin_password: str = Field(..., min_length=8, max_length=128)
    vote_options: list[str] = Field(..., min_length=2, max_length=10, description="Option labels in display order")
    settings: DebateSettingsInput = Field(default_factory=DebateSettingsInput)
    start_at: Optional[datetime] = Field(None, description="Defaults to now")
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else None

    @model_validator(mode="after")
    def check_window(self) -> "DebateCreate":
        if self.start_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        if any(not label.strip() or len(label) > 200 for label in self.vote_options):
            raise ValueError("option labels must be 1-200 characters")
        if any(len(tag) > 30 for tag in self.tags):
            raise ValueError("tags must be at most 30 characters")
        return self


class DebateUpdate(BaseModel):
    """Owner edits. Only the provided fields change."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_hidden: Optional[bool] = None
    settings: Optional[DebateSettingsInput] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else None


class VoteCreate(BaseModel):
    """Schema for casting a ballot."""

    option_ids: list[str] = Field(..., min_length=1, max_length=10)
    user_nickname: Optional[str] = Field(None, max_length=50)
    is_anonymous: bool = True


class OpinionCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)
    author_nickname: Optional[str] = Field(None, max_length=50)
    selected_option_id: Optional[str] = None


class PasswordVerify(BaseModel):
    admin_password: str = Field(..., min_length=1)


class OwnerToken(BaseModel):
    """Token granting owner rights over one debate or survey."""

    token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Lifetime in seconds")


class VoteOptionView(BaseModel):
    id: str
    label: str
    order: int


class DebateCreated(BaseModel):
    id: str
    public_url: str
    admin_url: str
    admin_token: str


class DebateDetail(BaseModel):
    """Public view of a debate."""

    id: str
    title: str
    description: Optional[str] = None
    category: DebateCategory
    tags: list[str]
    author_nickname: str
    vote_options: list[VoteOptionView]
    settings: DebateSettingsInput
    start_at: datetime
    end_at: datetime
    status: DebateStatus
    is_hidden: bool = False
    view_count: int = 0
    can_vote: bool
    results: Optional[DebateResults] = None
    opinions: list[OpinionView] = Field(default_factory=list)
    created_at: datetime


class DebateSummary(BaseModel):
    id: str
    title: str
    category: DebateCategory
    status: DebateStatus
    total_votes: int
    end_at: datetime


class VoteResult(BaseModel):
    """Response after successfully casting a ballot."""

    success: bool = True
    message: str = "Vote recorded"
    results: Optional[DebateResults] = None
    can_vote_again: bool = False
