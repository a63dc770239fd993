"""
Detailed survey statistics for the survey owner.

Builds the full report shown on the owner dashboard: an overview, per-question
breakdowns and a time-of-day analysis. Operates on the live responses only.
"""

import math
import statistics
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from models.cosmos_documents import (
    CHOICE_TYPES,
    TEXT_TYPES,
    QuestionDocument,
    QuestionType,
    ResponseDocument,
    SurveyDocument,
)
from services.rounding import percentage, round_half_up

WORD_CLOUD_SIZE = 20
MIN_WORD_LENGTH = 3


@dataclass
class SurveyOverview:
    """Headline numbers."""

    total_responses: int
    completion_rate: int
    avg_completion_time: int
    responses_per_day: float
    quality_score_avg: int
    flagged_responses: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_responses": self.total_responses,
            "completion_rate": self.completion_rate,
            "avg_completion_time": self.avg_completion_time,
            "responses_per_day": self.responses_per_day,
            "quality_score_avg": self.quality_score_avg,
            "flagged_responses": self.flagged_responses,
        }


@dataclass
class TimeAnalysis:
    """When responses arrive (UTC)."""

    by_hour: list[int]
    by_day: dict[str, int]
    peak_hours: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"by_hour": self.by_hour, "by_day": self.by_day, "peak_hours": self.peak_hours}


@dataclass
class SurveyStatistics:
    overview: SurveyOverview
    questions: dict[str, dict[str, Any]] = field(default_factory=dict)
    time_analysis: Optional[TimeAnalysis] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "overview": self.overview.to_dict(),
            "questions": self.questions,
            "time_analysis": self.time_analysis.to_dict() if self.time_analysis else None,
        }


# ============================================================================
# Per-question breakdowns
# ============================================================================


def _choice_stats(question: QuestionDocument, answers: list) -> dict[str, Any]:
    counts = Counter({choice.id: 0 for choice in question.properties.choices})
    for answer in answers:
        for choice_id in ([answer.choice_id] if answer.choice_id else answer.choice_ids or []):
            if choice_id in counts:
                counts[choice_id] += 1

    choices = {
        choice.id: {
            "label": choice.label,
            "count": counts[choice.id],
            "percentage": percentage(counts[choice.id], len(answers)),
        }
        for choice in question.properties.choices
    }

    most_selected = None
    best = 0
    for choice_id, data in choices.items():
        # First choice wins ties
        if data["count"] > best:
            best = data["count"]
            most_selected = {"id": choice_id, **data}

    return {"kind": "choice", "choices": choices, "most_selected": most_selected}


def _mode(values: list[int]) -> Optional[int]:
    """Most frequent value; on ties, the one reaching the top count first."""
    counts: Counter = Counter()
    mode, best = None, 0
    for value in values:
        counts[value] += 1
        if counts[value] > best:
            mode, best = value, counts[value]
    return mode


def _rating_stats(question: QuestionDocument, answers: list) -> dict[str, Any]:
    ratings = [answer.rating for answer in answers if answer.rating is not None]
    scale = question.properties.rating_scale
    if not ratings:
        return {"kind": "rating", "average": 0, "distribution": {}, "median": None, "mode": None}

    distribution = {
        value: {"count": ratings.count(value), "percentage": percentage(ratings.count(value), len(ratings))}
        for value in range(1, scale + 1)
    }
    return {
        "kind": "rating",
        "average": round_half_up(sum(ratings) / len(ratings), 1),
        "distribution": distribution,
        "median": statistics.median(ratings),
        "mode": _mode(ratings),
    }


def _text_stats(answers: list) -> dict[str, Any]:
    texts = [answer.text for answer in answers if answer.text]
    if not texts:
        return {"kind": "text", "word_cloud": [], "avg_length": 0, "response_count": 0}

    words: Counter = Counter()
    for text in texts:
        words.update(word for word in text.lower().split() if len(word) >= MIN_WORD_LENGTH)

    return {
        "kind": "text",
        "word_cloud": [{"word": word, "count": count} for word, count in words.most_common(WORD_CLOUD_SIZE)],
        "avg_length": int(round_half_up(sum(len(text) for text in texts) / len(texts))),
        "response_count": len(texts),
    }


def question_statistics(question: QuestionDocument, responses: list[ResponseDocument]) -> dict[str, Any]:
    answers = [
        answer for response in responses for answer in response.answers if answer.question_id == question.id
    ]
    question_type = QuestionType(question.type)
    if question_type in CHOICE_TYPES:
        stats = _choice_stats(question, answers)
    elif question_type == QuestionType.RATING:
        stats = _rating_stats(question, answers)
    elif question_type in TEXT_TYPES:
        stats = _text_stats(answers)
    else:
        stats = {}

    return {
        "title": question.title,
        "type": question_type.value,
        "response_count": len(answers),
        "stats": stats,
    }


# ============================================================================
# Time analysis
# ============================================================================


def responses_per_day(responses: list[ResponseDocument]) -> float:
    if not responses:
        return 0
    times = [response.submitted_at for response in responses]
    span_days = (max(times) - min(times)).total_seconds() / 86400
    return round_half_up(len(responses) / max(1, math.ceil(span_days)), 1)


def time_analysis(responses: list[ResponseDocument]) -> TimeAnalysis:
    by_hour = [0] * 24
    by_day: Counter = Counter()
    for response in responses:
        by_hour[response.submitted_at.hour] += 1
        by_day[response.submitted_at.date().isoformat()] += 1

    peak = max(by_hour)
    peak_hours = [f"{hour}:00-{hour + 1}:00" for hour, count in enumerate(by_hour) if count == peak and peak > 0]
    return TimeAnalysis(by_hour=by_hour, by_day=dict(sorted(by_day.items())), peak_hours=peak_hours)


def build_survey_statistics(
    survey: SurveyDocument,
    responses: list[ResponseDocument],
) -> SurveyStatistics:
    """Owner report over the survey's live responses."""
    live = [response for response in responses if not response.is_deleted]
    complete = [response for response in live if response.is_complete]

    overview = SurveyOverview(
        total_responses=len(live),
        completion_rate=percentage(len(complete), len(live)),
        avg_completion_time=(
            int(round_half_up(sum(r.completion_time for r in complete) / len(complete))) if complete else 0
        ),
        responses_per_day=responses_per_day(live),
        quality_score_avg=int(round_half_up(sum(r.quality_score for r in live) / len(live))) if live else 0,
        flagged_responses=sum(1 for r in live if r.quality_flags),
    )

    return SurveyStatistics(
        overview=overview,
        questions={question.id: question_statistics(question, live) for question in survey.sorted_questions},
        time_analysis=time_analysis(live),
    )
