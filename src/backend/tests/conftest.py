"""
Pytest fixtures for Tally backend tests.
"""

import asyncio
import copy
import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("PARTICIPANT_HASH_SALT", "test-participant-salt-0123456789")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")

from core.exceptions import AlreadyRespondedError, ConcurrencyConflictError, NotFoundError  # noqa: E402
from core.security import hash_password  # noqa: E402
from models.cosmos_documents import (  # noqa: E402
    DebateDocument,
    DebateSettings,
    QuestionDocument,
    ResponseDocument,
    SurveyDocument,
    SurveySettings,
    VoteOptionDocument,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
TEST_PASSWORD = "correct-horse-battery"

# bcrypt is slow on purpose; hash once per session
_PASSWORD_HASH: Optional[str] = None


def cached_password_hash() -> str:
    global _PASSWORD_HASH
    if _PASSWORD_HASH is None:
        _PASSWORD_HASH = hash_password(TEST_PASSWORD)
    return _PASSWORD_HASH


# =============================================================================
# Clock
# =============================================================================


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# In-memory repositories
# =============================================================================


class _EtagStore:
    """Stores JSON documents with an etag, like a Cosmos container."""

    def __init__(self, max_attempts: int = 5):
        self.items: dict[str, dict[str, Any]] = {}
        self.max_attempts = max_attempts
        self.conflicts = 0

    def put(self, data: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(data)
        stored["_etag"] = uuid.uuid4().hex
        self.items[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def update(self, item_id: str, mutate: Callable[[dict[str, Any]], dict[str, Any]]) -> dict[str, Any]:
        for _ in range(self.max_attempts):
            current = self.items.get(item_id)
            if current is None:
                raise NotFoundError()
            etag = current["_etag"]
            replacement = mutate(copy.deepcopy(current))
            # Let other tasks interleave between read and write
            await asyncio.sleep(0)
            if self.items[item_id]["_etag"] != etag:
                self.conflicts += 1
                continue
            return self.put(replacement)
        raise ConcurrencyConflictError()


class InMemoryDebateRepository:
    def __init__(self) -> None:
        self.store = _EtagStore()
        self.view_increments = 0

    async def get_by_id(self, debate_id: str, include_deleted: bool = False) -> Optional[DebateDocument]:
        data = self.store.items.get(debate_id)
        if data is None:
            return None
        debate = DebateDocument(**copy.deepcopy(data))
        if debate.is_deleted and not include_deleted:
            return None
        return debate

    async def list_public(self, limit: int = 20, category: Optional[str] = None) -> list[DebateDocument]:
        debates = [DebateDocument(**copy.deepcopy(d)) for d in self.store.items.values()]
        debates = [d for d in debates if not d.is_deleted and not d.is_hidden]
        if category:
            debates = [d for d in debates if d.category == category]
        return sorted(debates, key=lambda d: d.created_at, reverse=True)[:limit]

    async def create(self, debate: DebateDocument) -> DebateDocument:
        return DebateDocument(**self.store.put(debate.to_cosmos()))

    async def apply(self, debate_id: str, mutate: Callable[[DebateDocument], DebateDocument]) -> DebateDocument:
        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            debate = DebateDocument(**data)
            if debate.is_deleted:
                raise NotFoundError("Debate not found")
            return mutate(debate).to_cosmos()

        return DebateDocument(**await self.store.update(debate_id, _mutate))

    async def increment_view_count(self, debate_id: str) -> None:
        data = self.store.items.get(debate_id)
        if data is not None:
            data["stats"]["view_count"] += 1
            self.view_increments += 1


class InMemorySurveyRepository:
    def __init__(self) -> None:
        self.store = _EtagStore()

    async def get_by_id(self, survey_id: str, include_deleted: bool = False) -> Optional[SurveyDocument]:
        data = self.store.items.get(survey_id)
        if data is None:
            return None
        survey = SurveyDocument(**copy.deepcopy(data))
        if survey.is_deleted and not include_deleted:
            return None
        return survey

    async def create(self, survey: SurveyDocument) -> SurveyDocument:
        return SurveyDocument(**self.store.put(survey.to_cosmos()))

    async def apply(self, survey_id: str, mutate: Callable[[SurveyDocument], SurveyDocument]) -> SurveyDocument:
        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            survey = SurveyDocument(**data)
            if survey.is_deleted:
                raise NotFoundError("Survey not found")
            return mutate(survey).to_cosmos()

        return SurveyDocument(**await self.store.update(survey_id, _mutate))

    async def increment_view_count(self, survey_id: str) -> None:
        data = self.store.items.get(survey_id)
        if data is not None:
            data["stats"]["view_count"] += 1


class InMemoryResponseRepository:
    """Enforces the unique respondent key per survey, like the real container."""

    def __init__(self) -> None:
        self.store = _EtagStore()

    def _keys(self, survey_id: str) -> set[str]:
        return {d["respondent_key"] for d in self.store.items.values() if d["survey_id"] == survey_id}

    async def get_by_id(self, survey_id: str, response_id: str) -> Optional[ResponseDocument]:
        data = self.store.items.get(response_id)
        if data is None or data["survey_id"] != survey_id:
            return None
        return ResponseDocument(**copy.deepcopy(data))

    async def exists_for_participant(self, survey_id: str, participant_hash: str) -> bool:
        await asyncio.sleep(0)
        return participant_hash in self._keys(survey_id)

    async def list_by_survey(self, survey_id: str, include_deleted: bool = False) -> list[ResponseDocument]:
        responses = [
            ResponseDocument(**copy.deepcopy(d)) for d in self.store.items.values() if d["survey_id"] == survey_id
        ]
        if not include_deleted:
            responses = [r for r in responses if not r.is_deleted]
        return sorted(responses, key=lambda r: r.submitted_at)

    async def create(self, response: ResponseDocument) -> ResponseDocument:
        await asyncio.sleep(0)
        if response.respondent_key in self._keys(response.survey_id):
            raise AlreadyRespondedError()
        return ResponseDocument(**self.store.put(response.to_cosmos()))

    async def release(self, survey_id: str, response_id: str, deleted_by: str, now: datetime) -> ResponseDocument:
        from services.response_ledger import release_response

        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            response = ResponseDocument(**data)
            if response.is_deleted:
                raise NotFoundError("Response not found")
            return release_response(response, deleted_by, now).to_cosmos()

        return ResponseDocument(**await self.store.update(response_id, _mutate))


# =============================================================================
# Document builders
# =============================================================================


def make_debate(
    options: tuple[str, ...] = ("Agree", "Disagree"),
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
    **settings: Any,
) -> DebateDocument:
    """Active debate around FIXED_NOW unless a window is given."""
    return DebateDocument(
        title="Should tests be fast?",
        admin_password_hash=cached_password_hash(),
        vote_options=[VoteOptionDocument(label=label, order=index) for index, label in enumerate(options)],
        settings=DebateSettings(**settings),
        start_at=start_at or FIXED_NOW - timedelta(hours=1),
        end_at=end_at or FIXED_NOW + timedelta(days=1),
        created_at=FIXED_NOW - timedelta(hours=1),
    )


def make_questions() -> list[QuestionDocument]:
    """Single choice, multiple choice, rating and a conditional long text."""
    return [
        QuestionDocument(
            id="q1",
            title="Favourite colour?",
            type="single_choice",
            required=True,
            order=0,
            properties={"choices": [{"id": "c1", "label": "Red"}, {"id": "c2", "label": "Blue"}]},
        ),
        QuestionDocument(
            id="q2",
            title="Which pets?",
            type="multiple_choice",
            order=1,
            properties={
                "choices": [
                    {"id": "p1", "label": "Cat"},
                    {"id": "p2", "label": "Dog"},
                    {"id": "p3", "label": "Fish"},
                ],
                "max_selection": 2,
            },
        ),
        QuestionDocument(id="q3", title="Rate us", type="rating", order=2, properties={"rating_scale": 5}),
        QuestionDocument(
            id="q4",
            title="Why red?",
            type="long_text",
            order=3,
            properties={"max_length": 200},
            condition={"question_id": "q1", "choice_ids": ["c1"]},
        ),
    ]


def make_survey(questions: Optional[list[QuestionDocument]] = None, **settings: Any) -> SurveyDocument:
    return SurveyDocument(
        title="Customer survey",
        admin_password_hash=cached_password_hash(),
        questions=questions if questions is not None else make_questions(),
        settings=SurveySettings(**settings),
        created_at=FIXED_NOW - timedelta(days=1),
    )


def full_answers() -> list[dict[str, Any]]:
    """Answers to every question in make_questions(), choosing red."""
    return [
        {"question_id": "q1", "choice_id": "c1"},
        {"question_id": "q2", "choice_ids": ["p1", "p2"]},
        {"question_id": "q3", "rating": 4},
        {"question_id": "q4", "text": "It is warm"},
    ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def debate_repo() -> InMemoryDebateRepository:
    return InMemoryDebateRepository()


@pytest.fixture
def survey_repo() -> InMemorySurveyRepository:
    return InMemorySurveyRepository()


@pytest.fixture
def response_repo() -> InMemoryResponseRepository:
    return InMemoryResponseRepository()


@pytest.fixture
def debate_service(debate_repo: InMemoryDebateRepository, clock: FixedClock) -> Any:
    from services.debate_service import DebateService

    return DebateService(debate_repo, clock=clock)


@pytest.fixture
def survey_service(
    survey_repo: InMemorySurveyRepository,
    response_repo: InMemoryResponseRepository,
    clock: FixedClock,
) -> Any:
    from services.survey_service import SurveyService

    return SurveyService(survey_repo, response_repo, clock=clock)


@pytest.fixture
async def app(
    debate_repo: InMemoryDebateRepository,
    survey_repo: InMemorySurveyRepository,
    response_repo: InMemoryResponseRepository,
    clock: FixedClock,
) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the in-memory repositories and fixed clock."""
    from api.deps import get_clock
    from main import app as fastapi_app
    from repositories.provider import get_debate_repository, get_response_repository, get_survey_repository

    fastapi_app.dependency_overrides[get_debate_repository] = lambda: debate_repo
    fastapi_app.dependency_overrides[get_survey_repository] = lambda: survey_repo
    fastapi_app.dependency_overrides[get_response_repository] = lambda: response_repo
    fastapi_app.dependency_overrides[get_clock] = lambda: clock
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
