"""
Result projection.

Turns a resolved aggregate into what a viewer is allowed to see. Free-text
answers are reduced to counts here; raw text is only reachable through the
owner's statistics report.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel

from models.cosmos_documents import (
    CHOICE_TYPES,
    TEXT_TYPES,
    DebateDocument,
    DebateStatus,
    QuestionType,
    SurveyDocument,
)
from services.aggregates import (
    ComputedSurveyAggregate,
    OverriddenSurveyAggregate,
    has_debate_override,
    resolve_debate_aggregate,
)
from services.eligibility import current_debate_status
from services.rounding import percentage, round_half_up

ANONYMOUS_NICKNAME = "anonymous"


class OptionResult(BaseModel):
    id: str
    label: str
    vote_count: int
    percentage: int


class DebateResults(BaseModel):
    source: str
    options: list[OptionResult]
    total_votes: int
    unique_voters: int
    opinion_count: int


class OpinionView(BaseModel):
    author_nickname: str
    content: str
    selected_option_id: Optional[str] = None
    created_at: datetime


class ChoiceResult(BaseModel):
    id: str
    label: str
    count: int
    percentage: int


class QuestionResult(BaseModel):
    question_id: str
    title: str
    type: QuestionType
    response_count: int
    choices: list[ChoiceResult] = []
    average: Optional[float] = None
    rating_distribution: dict[int, int] = {}
    text_response_count: Optional[int] = None


class SurveyResults(BaseModel):
    source: str
    total_responses: int
    questions: list[QuestionResult]


def results_visible(debate: DebateDocument, now: datetime, viewer_is_owner_or_admin: bool = False) -> bool:
    if viewer_is_owner_or_admin or debate.settings.show_results_before_end:
        return True
    return current_debate_status(debate, now) == DebateStatus.ENDED


def project_debate(
    debate: DebateDocument,
    now: datetime,
    viewer_is_owner_or_admin: bool = False,
) -> Optional[DebateResults]:
    """Debate results, or None while they are hidden from this viewer."""
    if not results_visible(debate, now, viewer_is_owner_or_admin):
        return None

    aggregate = resolve_debate_aggregate(debate)
    return DebateResults(
        source=aggregate.source,
        options=[
            OptionResult(id=o.id, label=o.label, vote_count=o.vote_count, percentage=o.percentage)
            for o in aggregate.options
        ],
        total_votes=aggregate.total_votes,
        unique_voters=aggregate.unique_voters,
        opinion_count=aggregate.opinion_count,
    )


def visible_opinions(debate: DebateDocument) -> list[OpinionView]:
    """Opinions shown publicly, newest first."""
    if has_debate_override(debate):
        opinions = [
            OpinionView(
                author_nickname=opinion.author_nickname,
                content=opinion.content,
                selected_option_id=opinion.selected_option_id,
                created_at=opinion.created_at,
            )
            for opinion in debate.admin_results.opinions
        ]
    else:
        opinions = [
            OpinionView(
                author_nickname=ANONYMOUS_NICKNAME if opinion.is_anonymous else opinion.author_nickname,
                content=opinion.content,
                selected_option_id=opinion.selected_option_id,
                created_at=opinion.created_at,
            )
            for opinion in debate.opinions
            if not opinion.is_deleted
        ]
    return sorted(opinions, key=lambda opinion: opinion.created_at, reverse=True)


def project_survey(
    survey: SurveyDocument,
    aggregate: Union[ComputedSurveyAggregate, OverriddenSurveyAggregate],
    viewer_is_owner_or_admin: bool = False,
) -> Optional[SurveyResults]:
    """Per-question survey results, or None when results are private."""
    if not survey.settings.public_results and not viewer_is_owner_or_admin:
        return None

    questions: list[QuestionResult] = []
    for question in survey.sorted_questions:
        tally = aggregate.questions.get(question.id)
        if tally is None:
            continue
        question_type = QuestionType(question.type)
        result = QuestionResult(
            question_id=question.id,
            title=question.title,
            type=question_type,
            response_count=tally.total_responses,
        )

        if question_type in CHOICE_TYPES:
            result.choices = [
                ChoiceResult(
                    id=choice.id,
                    label=choice.label,
                    count=tally.choices.get(choice.id, 0),
                    percentage=percentage(tally.choices.get(choice.id, 0), tally.total_responses),
                )
                for choice in question.properties.choices
            ]
        elif question_type == QuestionType.RATING:
            scale = question.properties.rating_scale
            distribution = {value: tally.ratings.get(value, 0) for value in range(1, scale + 1)}
            rated = sum(distribution.values())
            result.rating_distribution = distribution
            result.response_count = rated
            if rated:
                total = sum(value * count for value, count in distribution.items())
                result.average = round_half_up(total / rated, 1)
        elif question_type in TEXT_TYPES:
            result.text_response_count = tally.total_responses

        questions.append(result)

    return SurveyResults(
        source=aggregate.source,
        total_responses=aggregate.total_responses,
        questions=questions,
    )
