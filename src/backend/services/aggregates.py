"""
Aggregate resolution.

Public results come from one of two sources: the live tallies derived from
the ledger, or an operator-entered override. Both variants share one payload
shape and are told apart only by ``source``, so consumers never branch on
where the numbers came from. Setting an override never rewrites the ledger.
"""

from collections import Counter
from collections.abc import Iterable
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from models.cosmos_documents import (
    CHOICE_TYPES,
    TEXT_TYPES,
    DebateDocument,
    QuestionAdminResult,
    QuestionType,
    ResponseDocument,
    SurveyDocument,
)
from services.rounding import percentage

COMPUTED = "computed"
ADMIN_OVERRIDE = "admin_override"

SAMPLE_RESPONSE_LIMIT = 5


# ============================================================================
# Debate aggregates
# ============================================================================


class OptionTally(BaseModel):
    id: str
    label: str
    order: int
    vote_count: int
    percentage: int


class DebateTally(BaseModel):
    options: list[OptionTally]
    total_votes: int
    unique_voters: int
    opinion_count: int


class ComputedDebateAggregate(DebateTally):
    source: Literal["computed"] = COMPUTED


class OverriddenDebateAggregate(DebateTally):
    source: Literal["admin_override"] = ADMIN_OVERRIDE


DebateAggregate = Annotated[
    Union[ComputedDebateAggregate, OverriddenDebateAggregate],
    Field(discriminator="source"),
]


def has_debate_override(debate: DebateDocument) -> bool:
    return debate.admin_results is not None and not debate.admin_results.is_empty


def _option_tallies(debate: DebateDocument, counts: list[int]) -> list[OptionTally]:
    total = sum(counts)
    return [
        OptionTally(
            id=option.id,
            label=option.label,
            order=option.order,
            vote_count=count,
            percentage=percentage(count, total),
        )
        for option, count in zip(debate.sorted_options, counts)
    ]


def compute_debate_aggregate(debate: DebateDocument) -> ComputedDebateAggregate:
    """Live tallies straight from the cast votes."""
    counts = [len(option.votes) for option in debate.sorted_options]
    return ComputedDebateAggregate(
        options=_option_tallies(debate, counts),
        total_votes=sum(counts),
        unique_voters=len(debate.participants),
        opinion_count=sum(1 for opinion in debate.opinions if not opinion.is_deleted),
    )


def overridden_debate_aggregate(debate: DebateDocument) -> OverriddenDebateAggregate:
    """
    Project the operator's agree/disagree counts onto the option list.

    The first option by display order receives ``agree_count`` and the second
    ``disagree_count``; any further options read zero.
    """
    admin = debate.admin_results
    counts = [0] * len(debate.vote_options)
    if counts:
        counts[0] = admin.agree_count
    if len(counts) > 1:
        counts[1] = admin.disagree_count

    total = sum(counts)
    return OverriddenDebateAggregate(
        options=_option_tallies(debate, counts),
        total_votes=total,
        unique_voters=total,
        opinion_count=len(admin.opinions),
    )


def resolve_debate_aggregate(debate: DebateDocument) -> Union[ComputedDebateAggregate, OverriddenDebateAggregate]:
    if has_debate_override(debate):
        return overridden_debate_aggregate(debate)
    return compute_debate_aggregate(debate)


# ============================================================================
# Survey aggregates
# ============================================================================


class SurveyTally(BaseModel):
    questions: dict[str, QuestionAdminResult]
    total_responses: int


class ComputedSurveyAggregate(SurveyTally):
    source: Literal["computed"] = COMPUTED


class OverriddenSurveyAggregate(SurveyTally):
    source: Literal["admin_override"] = ADMIN_OVERRIDE


SurveyAggregate = Annotated[
    Union[ComputedSurveyAggregate, OverriddenSurveyAggregate],
    Field(discriminator="source"),
]


def has_survey_override(survey: SurveyDocument) -> bool:
    return bool(survey.admin_results)


def compute_survey_aggregate(
    survey: SurveyDocument,
    responses: Iterable[ResponseDocument],
) -> ComputedSurveyAggregate:
    """Per-question counts over the live (non-deleted) responses."""
    live = [response for response in responses if not response.is_deleted]

    questions: dict[str, QuestionAdminResult] = {}
    for question in survey.questions:
        question_type = QuestionType(question.type)
        answers = [
            answer for response in live for answer in response.answers if answer.question_id == question.id
        ]

        choices: Counter = Counter()
        ratings: Counter = Counter()
        samples: list[str] = []
        if question_type in CHOICE_TYPES:
            choices = Counter({choice.id: 0 for choice in question.properties.choices})
            for answer in answers:
                if answer.choice_id is not None:
                    choices[answer.choice_id] += 1
                for choice_id in answer.choice_ids or []:
                    choices[choice_id] += 1
        elif question_type == QuestionType.RATING:
            ratings = Counter({value: 0 for value in range(1, question.properties.rating_scale + 1)})
            for answer in answers:
                ratings[answer.rating] += 1
        elif question_type in TEXT_TYPES:
            samples = [answer.text for answer in answers if answer.text][:SAMPLE_RESPONSE_LIMIT]

        questions[question.id] = QuestionAdminResult(
            total_responses=len(answers),
            choices=dict(choices),
            ratings=dict(ratings),
            sample_responses=samples,
        )

    return ComputedSurveyAggregate(questions=questions, total_responses=len(live))


def overridden_survey_aggregate(survey: SurveyDocument) -> OverriddenSurveyAggregate:
    """The operator's per-question map, verbatim."""
    questions = {qid: result.model_copy(deep=True) for qid, result in survey.admin_results.items()}
    total = max((result.total_responses for result in questions.values()), default=0)
    return OverriddenSurveyAggregate(questions=questions, total_responses=total)


def resolve_survey_aggregate(
    survey: SurveyDocument,
    responses: Iterable[ResponseDocument] = (),
) -> Union[ComputedSurveyAggregate, OverriddenSurveyAggregate]:
    """
    Pick the override when one is set, else compute from ``responses``.

    Callers that must load responses from storage should check
    has_survey_override() first and skip the load when it is true.
    """
    if has_survey_override(survey):
        return overridden_survey_aggregate(survey)
    return compute_survey_aggregate(survey, responses)
