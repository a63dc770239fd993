"""
Response ledger.

Validation, quality scoring and stats maintenance for survey responses. All
functions are pure: they return new documents and never touch storage.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError

from core.clock import ensure_aware
from core.exceptions import InvalidAnswersError
from core.security import generate_public_id, generate_response_code
from models.cosmos_documents import (
    CHOICE_TYPES,
    TEXT_TYPES,
    AnswerDocument,
    QualityFlag,
    QuestionDocument,
    QuestionType,
    ResponseDocument,
    SurveyDocument,
)
from services.rounding import percentage, round_half_up

# Quality rules
TOO_FAST_SECONDS_PER_ANSWER = 2
TOO_FAST_PENALTY = 30
SAME_ANSWER_MIN_COUNT = 4
SAME_ANSWER_PENALTY = 20

ADMIN_KEY_PREFIX = "admin:"
RELEASED_KEY_PREFIX = "released:"

RawAnswer = Union[AnswerDocument, Mapping[str, Any]]


# ============================================================================
# Validation
# ============================================================================


def _selected_choices(answer: AnswerDocument) -> set[str]:
    if answer.choice_id is not None:
        return {answer.choice_id}
    return set(answer.choice_ids or [])


def is_applicable(question: QuestionDocument, answers: Mapping[str, AnswerDocument]) -> bool:
    """Whether a question's skip-logic condition is met by the given answers."""
    condition = question.condition
    if condition is None:
        return True
    referenced = answers.get(condition.question_id)
    if referenced is None:
        return False
    return bool(_selected_choices(referenced) & set(condition.choice_ids))


def _parse_answer(survey: SurveyDocument, raw: RawAnswer) -> tuple[QuestionDocument, AnswerDocument]:
    data = raw.model_dump() if isinstance(raw, AnswerDocument) else dict(raw)
    question_id = data.get("question_id")
    question = survey.get_question(question_id) if question_id else None
    if question is None:
        raise InvalidAnswersError(f"Unknown question: {question_id}")

    declared_type = data.get("question_type")
    if declared_type is not None and declared_type != QuestionType(question.type).value:
        raise InvalidAnswersError(f"Answer type does not match question {question.id}")
    data["question_type"] = question.type

    try:
        return question, AnswerDocument(**data)
    except ValidationError as e:
        raise InvalidAnswersError(f"Malformed answer for question {question.id}") from e


def _check_answer(question: QuestionDocument, answer: AnswerDocument) -> Optional[AnswerDocument]:
    """Validate one answer against its question. Returns None for a blank text answer."""
    props = question.properties
    question_type = QuestionType(question.type)

    if question_type == QuestionType.SINGLE_CHOICE:
        if answer.choice_id not in question.choice_ids():
            raise InvalidAnswersError(f"Invalid choice for question {question.id}")

    elif question_type == QuestionType.MULTIPLE_CHOICE:
        selected = answer.choice_ids or []
        if not selected:
            raise InvalidAnswersError(f"No choices selected for question {question.id}")
        if len(set(selected)) != len(selected):
            raise InvalidAnswersError(f"Duplicate choices for question {question.id}")
        if not set(selected) <= question.choice_ids():
            raise InvalidAnswersError(f"Invalid choice for question {question.id}")
        if props.max_selection is not None and len(selected) > props.max_selection:
            raise InvalidAnswersError(f"At most {props.max_selection} choices allowed for question {question.id}")
        if props.min_selection is not None and len(selected) < props.min_selection:
            raise InvalidAnswersError(f"At least {props.min_selection} choices required for question {question.id}")

    elif question_type in TEXT_TYPES:
        text = (answer.text or "").strip()
        if not text:
            return None
        if props.max_length is not None and len(text) > props.max_length:
            raise InvalidAnswersError(f"Answer to question {question.id} is too long")
        if props.min_length is not None and len(text) < props.min_length:
            raise InvalidAnswersError(f"Answer to question {question.id} is too short")
        answer = answer.model_copy(update={"text": text})

    elif question_type == QuestionType.RATING:
        if not 1 <= answer.rating <= props.rating_scale:
            raise InvalidAnswersError(f"Rating for question {question.id} must be between 1 and {props.rating_scale}")

    return answer


def validate_answers(survey: SurveyDocument, raw_answers: Iterable[RawAnswer]) -> list[AnswerDocument]:
    """
    Validate a full set of answers against the survey's questions.

    Blank text answers are treated as unanswered. Answers to questions whose
    skip-logic condition is not met are rejected.

    Returns:
        Normalized answers in question display order

    Raises:
        InvalidAnswersError: on the first problem found
    """
    answers: dict[str, AnswerDocument] = {}
    for raw in raw_answers:
        question, answer = _parse_answer(survey, raw)
        if question.id in answers:
            raise InvalidAnswersError(f"Question {question.id} answered more than once")
        checked = _check_answer(question, answer)
        if checked is not None:
            answers[question.id] = checked

    if not answers:
        raise InvalidAnswersError("At least one question must be answered")

    for question in survey.questions:
        applicable = is_applicable(question, answers)
        if question.id in answers and not applicable:
            raise InvalidAnswersError(f"Question {question.id} does not apply to these answers")
        if applicable and question.required and question.id not in answers:
            raise InvalidAnswersError(f"Question {question.id} is required")

    return [answers[q.id] for q in survey.sorted_questions if q.id in answers]


def is_complete(survey: SurveyDocument, answers: Iterable[AnswerDocument]) -> bool:
    """Every applicable question has an answer."""
    answered = {answer.question_id: answer for answer in answers}
    return all(q.id in answered for q in survey.questions if is_applicable(q, answered))


# ============================================================================
# Quality scoring
# ============================================================================


def score_response(
    answers: list[AnswerDocument],
    completion_time: int,
    unknown_origin: bool = False,
) -> tuple[int, list[QualityFlag]]:
    """
    Heuristic quality score in [0, 100] and the flags that lowered it.

    Each rule fires at most once:
    - too_fast (-30): fewer than 2 seconds per answer
    - all_same_answers (-20): more than 3 choice answers all picking the same
      first choice
    - suspicious_ip (no penalty): participant address could not be determined
    """
    score = 100
    flags: list[QualityFlag] = []

    if completion_time < TOO_FAST_SECONDS_PER_ANSWER * len(answers):
        score -= TOO_FAST_PENALTY
        flags.append(QualityFlag.TOO_FAST)

    first_choices = [
        answer.first_choice for answer in answers if QuestionType(answer.question_type) in CHOICE_TYPES
    ]
    if len(first_choices) >= SAME_ANSWER_MIN_COUNT and len(set(first_choices)) == 1:
        score -= SAME_ANSWER_PENALTY
        flags.append(QualityFlag.ALL_SAME_ANSWERS)

    if unknown_origin:
        flags.append(QualityFlag.SUSPICIOUS_IP)

    return max(0, min(100, score)), flags


def completion_seconds(started_at: datetime, submitted_at: datetime) -> int:
    """Whole seconds between start and submit, never negative."""
    elapsed = (ensure_aware(submitted_at) - ensure_aware(started_at)).total_seconds()
    return max(0, int(round_half_up(elapsed)))


# ============================================================================
# Response construction
# ============================================================================


def build_response(
    survey: SurveyDocument,
    answers: list[AnswerDocument],
    participant_hash: str,
    now: datetime,
    started_at: Optional[datetime] = None,
    submitted_by_admin: bool = False,
    unknown_origin: bool = False,
) -> ResponseDocument:
    """Assemble a scored response from already validated answers."""
    started = started_at or now
    completion_time = completion_seconds(started, now)
    quality_score, quality_flags = score_response(answers, completion_time, unknown_origin)

    response_id = generate_public_id()
    respondent_key = f"{ADMIN_KEY_PREFIX}{response_id}" if submitted_by_admin else participant_hash

    return ResponseDocument(
        id=response_id,
        survey_id=survey.id,
        response_code=generate_response_code(),
        respondent_hash=participant_hash,
        respondent_key=respondent_key,
        answers=answers,
        started_at=started,
        submitted_at=now,
        completion_time=completion_time,
        is_complete=is_complete(survey, answers),
        quality_score=quality_score,
        quality_flags=quality_flags,
        submitted_by_admin=submitted_by_admin,
        created_at=now,
    )


def release_response(response: ResponseDocument, deleted_by: str, now: datetime) -> ResponseDocument:
    """Soft-delete a response and free its participant to respond again."""
    return response.model_copy(
        update={
            "is_deleted": True,
            "deleted_by": deleted_by,
            "deleted_at": now,
            "respondent_key": f"{RELEASED_KEY_PREFIX}{response.id}",
        },
        deep=True,
    )


# ============================================================================
# Survey stats
# ============================================================================


def _refresh_derived_stats(survey: SurveyDocument) -> None:
    stats = survey.stats
    stats.completion_rate = percentage(stats.complete_count, stats.response_count)
    stats.avg_completion_time = (
        int(round_half_up(stats.completion_time_total / stats.complete_count)) if stats.complete_count else 0
    )


def freeze_survey(survey: SurveyDocument, at: datetime) -> None:
    """Lock the question set, in place."""
    if survey.first_response_at is None:
        survey.first_response_at = at
    survey.is_editable = False


def apply_response_to_survey(survey: SurveyDocument, response: ResponseDocument) -> SurveyDocument:
    """Fold one accepted response into the survey's cached stats."""
    updated = survey.model_copy(deep=True)
    freeze_survey(updated, response.submitted_at)

    stats = updated.stats
    stats.response_count += 1
    if response.is_complete:
        stats.complete_count += 1
        stats.completion_time_total += response.completion_time
    stats.last_response_at = response.submitted_at
    _refresh_derived_stats(updated)

    updated.updated_at = response.submitted_at
    return updated


def recompute_survey_stats(survey: SurveyDocument, responses: Iterable[ResponseDocument]) -> SurveyDocument:
    """
    Re-derive the stats block from the full response list.

    Deleted responses are ignored. The view counter and the edit freeze are
    left as they are.
    """
    live = [response for response in responses if not response.is_deleted]
    complete = [response for response in live if response.is_complete]

    updated = survey.model_copy(deep=True)
    stats = updated.stats
    stats.response_count = len(live)
    stats.complete_count = len(complete)
    stats.completion_time_total = sum(response.completion_time for response in complete)
    stats.last_response_at = max((response.submitted_at for response in live), default=None)
    _refresh_derived_stats(updated)
    return updated
