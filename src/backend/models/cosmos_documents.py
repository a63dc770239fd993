"""
Cosmos DB document models for Tally.

These Pydantic models define the document structure stored in Cosmos DB.
Debates and surveys are self-contained aggregate roots: votes, participant
records and opinions are embedded so that one conditional replace commits a
whole mutation. Survey responses live in their own container.

Container Strategy:
- debates: Debate definitions with embedded options, votes and opinions (partition: /id)
- surveys: Survey definitions with embedded questions and stats (partition: /id)
- responses: Survey responses (partition: /survey_id, unique key: /respondent_key)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from core.security import generate_public_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class DebateStatus(str, Enum):
    """Debate lifecycle status, derived from the voting window."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"


class DebateCategory(str, Enum):
    GENERAL = "general"
    TECH = "tech"
    LIFESTYLE = "lifestyle"
    POLITICS = "politics"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    OTHER = "other"


class SurveyStatus(str, Enum):
    """Survey lifecycle status, set by the owner."""

    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    RATING = "rating"


CHOICE_TYPES = (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE)
TEXT_TYPES = (QuestionType.SHORT_TEXT, QuestionType.LONG_TEXT)


class QualityFlag(str, Enum):
    TOO_FAST = "too_fast"
    DUPLICATE_PATTERN = "duplicate_pattern"
    ALL_SAME_ANSWERS = "all_same_answers"
    SUSPICIOUS_IP = "suspicious_ip"


# ============================================================================
# Base Document Model
# ============================================================================


class CosmosDocument(BaseModel):
    """
    Base class for Cosmos DB documents.

    All documents have:
    - id: 128-bit random hex identifier used in public links
    - _ts, _etag, _rid: system properties managed by Cosmos DB, kept as extras
    """

    id: str = Field(default_factory=generate_public_id)

    class Config:
        # Allow extra fields for Cosmos DB system properties (_ts, _etag, etc.)
        extra = "allow"
        # Use enum values for serialization
        use_enum_values = True

    def to_cosmos(self) -> dict:
        """Serialize for writing, without Cosmos system properties."""
        data = self.model_dump(mode="json")
        return {key: value for key, value in data.items() if not key.startswith("_")}


# ============================================================================
# Debate Documents
# ============================================================================


class CastVote(BaseModel):
    """A single ballot entry for one option."""

    user_id: Optional[str] = None
    user_nickname: Optional[str] = None
    voter_hash: str
    is_anonymous: bool = False
    voted_at: datetime = Field(default_factory=_utcnow)


class VoteOptionDocument(BaseModel):
    """Embedded option within DebateDocument. ``votes`` is authoritative."""

    id: str = Field(default_factory=generate_public_id)
    label: str
    order: int = 0
    votes: list[CastVote] = Field(default_factory=list)

    # Derived from votes
    vote_count: int = 0
    percentage: int = 0


class ParticipantRecord(BaseModel):
    """Ballots accepted from one participant hash."""

    participant_hash: str
    vote_count: int = 0
    last_vote_at: Optional[datetime] = None


class OpinionDocument(BaseModel):
    id: str = Field(default_factory=generate_public_id)
    author_nickname: str = "anonymous"
    author_hash: str
    selected_option_id: Optional[str] = None
    content: str
    is_anonymous: bool = False
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class DebateSettings(BaseModel):
    allow_multiple_choice: bool = False
    show_results_before_end: bool = True
    allow_anonymous_vote: bool = True
    allow_opinion: bool = True
    max_votes_per_ip: int = Field(default=1, ge=1)


class DebateStats(BaseModel):
    """Cached aggregates. Always re-derivable from options and participants."""

    total_votes: int = 0
    unique_voters: int = 0
    opinion_count: int = 0
    view_count: int = 0
    last_vote_at: Optional[datetime] = None


class AdminOpinion(BaseModel):
    author_nickname: str = "anonymous"
    content: str
    selected_option_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class DebateAdminResults(BaseModel):
    """Operator-entered replacement for the public tallies."""

    agree_count: int = Field(default=0, ge=0)
    disagree_count: int = Field(default=0, ge=0)
    opinions: list[AdminOpinion] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.agree_count == 0 and self.disagree_count == 0 and not self.opinions


class DebateDocument(CosmosDocument):
    """
    Debate document stored in the 'debates' container.

    Partition key: /id
    """

    title: str
    description: Optional[str] = None
    category: DebateCategory = DebateCategory.GENERAL
    tags: list[str] = Field(default_factory=list)

    author_nickname: str = "anonymous"
    author_hash: Optional[str] = None
    admin_password_hash: str

    vote_options: list[VoteOptionDocument] = Field(default_factory=list)
    settings: DebateSettings = Field(default_factory=DebateSettings)

    start_at: datetime
    end_at: datetime
    # Snapshot only; the effective status is recomputed from the window on read.
    status: DebateStatus = DebateStatus.SCHEDULED
    is_hidden: bool = False
    is_deleted: bool = False

    stats: DebateStats = Field(default_factory=DebateStats)
    opinions: list[OpinionDocument] = Field(default_factory=list)
    participants: list[ParticipantRecord] = Field(default_factory=list)
    admin_results: Optional[DebateAdminResults] = None

    public_url: Optional[str] = None
    admin_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_option(self, option_id: str) -> Optional[VoteOptionDocument]:
        for option in self.vote_options:
            if option.id == option_id:
                return option
        return None

    def get_participant(self, participant_hash: str) -> Optional[ParticipantRecord]:
        for record in self.participants:
            if record.participant_hash == participant_hash:
                return record
        return None

    @property
    def sorted_options(self) -> list[VoteOptionDocument]:
        return sorted(self.vote_options, key=lambda option: option.order)


# ============================================================================
# Survey Documents
# ============================================================================


class ChoiceDocument(BaseModel):
    id: str
    label: str


class QuestionProperties(BaseModel):
    choices: list[ChoiceDocument] = Field(default_factory=list)
    max_length: Optional[int] = Field(default=None, ge=1)
    min_length: Optional[int] = Field(default=None, ge=0)
    max_selection: Optional[int] = Field(default=None, ge=1)
    min_selection: Optional[int] = Field(default=None, ge=0)
    rating_scale: Literal[5, 10] = 5


class QuestionCondition(BaseModel):
    """Skip logic: show the question only if another answer picked one of these choices."""

    question_id: str
    choice_ids: list[str] = Field(min_length=1)


class QuestionDocument(BaseModel):
    id: str
    title: str
    type: QuestionType
    required: bool = False
    properties: QuestionProperties = Field(default_factory=QuestionProperties)
    order: int = 0
    condition: Optional[QuestionCondition] = None

    def choice_ids(self) -> set[str]:
        return {choice.id for choice in self.properties.choices}

    def choice_label(self, choice_id: str) -> Optional[str]:
        for choice in self.properties.choices:
            if choice.id == choice_id:
                return choice.label
        return None


class WelcomeScreen(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    button_text: str = "Start"


class ThankYouScreen(BaseModel):
    title: str = "Thank you!"
    description: Optional[str] = None
    show_response_code: bool = True


class SurveySettings(BaseModel):
    show_progress_bar: bool = True
    show_question_number: bool = True
    allow_back_navigation: bool = True
    autosave_progress: bool = True
    response_limit: Optional[int] = Field(default=None, ge=1)
    close_at: Optional[datetime] = None
    public_results: bool = True


class SurveyStats(BaseModel):
    """Cached aggregates. Always re-derivable from the live responses."""

    response_count: int = 0
    complete_count: int = 0
    completion_rate: int = 0
    completion_time_total: int = 0
    avg_completion_time: int = 0
    last_response_at: Optional[datetime] = None
    view_count: int = 0


class QuestionAdminResult(BaseModel):
    total_responses: int = Field(default=0, ge=0)
    choices: dict[str, int] = Field(default_factory=dict)
    ratings: dict[int, int] = Field(default_factory=dict)
    sample_responses: list[str] = Field(default_factory=list)


class SurveyDocument(CosmosDocument):
    """
    Survey document stored in the 'surveys' container.

    Partition key: /id
    """

    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    author_nickname: str = "anonymous"
    creator_hash: Optional[str] = None
    admin_password_hash: str

    questions: list[QuestionDocument] = Field(default_factory=list)
    welcome_screen: WelcomeScreen = Field(default_factory=WelcomeScreen)
    thankyou_screen: ThankYouScreen = Field(default_factory=ThankYouScreen)
    settings: SurveySettings = Field(default_factory=SurveySettings)

    status: SurveyStatus = SurveyStatus.OPEN
    is_hidden: bool = False
    is_deleted: bool = False
    is_editable: bool = True
    first_response_at: Optional[datetime] = None

    stats: SurveyStats = Field(default_factory=SurveyStats)
    admin_results: Optional[dict[str, QuestionAdminResult]] = None

    public_url: Optional[str] = None
    admin_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_question(self, question_id: str) -> Optional[QuestionDocument]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    @property
    def sorted_questions(self) -> list[QuestionDocument]:
        return sorted(self.questions, key=lambda question: question.order)


# ============================================================================
# Response Documents
# ============================================================================


class AnswerDocument(BaseModel):
    """One answer. Exactly one value field is set, matching question_type."""

    question_id: str
    question_type: QuestionType
    choice_id: Optional[str] = None
    choice_ids: Optional[list[str]] = None
    text: Optional[str] = None
    rating: Optional[int] = None
    time_spent: Optional[int] = Field(default=None, ge=0)

    class Config:
        use_enum_values = True

    @model_validator(mode="after")
    def check_single_value(self) -> "AnswerDocument":
        expected = {
            QuestionType.SINGLE_CHOICE.value: "choice_id",
            QuestionType.MULTIPLE_CHOICE.value: "choice_ids",
            QuestionType.SHORT_TEXT.value: "text",
            QuestionType.LONG_TEXT.value: "text",
            QuestionType.RATING.value: "rating",
        }[QuestionType(self.question_type).value]
        populated = [
            name for name in ("choice_id", "choice_ids", "text", "rating") if getattr(self, name) is not None
        ]
        if populated != [expected]:
            raise ValueError(f"{self.question_type} answers must set only '{expected}'")
        return self

    @property
    def first_choice(self) -> Optional[str]:
        if self.choice_id is not None:
            return self.choice_id
        if self.choice_ids:
            return self.choice_ids[0]
        return None


class ResponseDocument(CosmosDocument):
    """
    Survey response stored in the 'responses' container.

    Partition key: /survey_id
    Unique key: /respondent_key (one live response per participant per survey)
    """

    survey_id: str
    response_code: str
    respondent_hash: str
    # Equals respondent_hash for ordinary responses. Rewritten on release so the
    # participant may respond again; admin submissions use their own key.
    respondent_key: str

    answers: list[AnswerDocument] = Field(default_factory=list)
    started_at: datetime
    submitted_at: datetime
    completion_time: int = Field(default=0, ge=0)  # seconds
    is_complete: bool = True

    is_deleted: bool = False
    deleted_by: Optional[str] = None
    deleted_at: Optional[datetime] = None

    quality_score: int = Field(default=100, ge=0, le=100)
    quality_flags: list[QualityFlag] = Field(default_factory=list)
    submitted_by_admin: bool = False

    created_at: datetime = Field(default_factory=_utcnow)
