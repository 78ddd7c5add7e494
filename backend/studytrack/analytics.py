"""Read-only views derived from a user's already-fetched records.

Every function here is pure: callers pass owner-scoped collections and
get back a computed value. Nothing is persisted.

`weak_topics` is a placeholder. It returns fixed sample records that
define the shape a real analyzer over task and test history must
produce; `revision_recommendations` derives from whatever weak topics it
is given, so it will keep working once that analyzer exists.
"""

import math
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from . import models
from .schemas import (
    DashboardSummary,
    PerformanceTrends,
    RevisionRecommendation,
    TaskOut,
    TrendPoint,
    WeakTopic,
)

RECOMMENDED_RESOURCES = [
    "Textbook chapters",
    "Video lectures",
    "Practice problems",
    "Previous year questions",
]

_SAMPLE_WEAK_TOPICS = [
    {
        "topic": "Digital Electronics",
        "subject": "Electronics",
        "accuracy": 45,
        "attempts": 12,
        "trend": "declining",
        "last_studied": "2024-01-15",
        "recommended_actions": ["Review fundamentals", "Practice more problems", "Watch video tutorials"],
    },
    {
        "topic": "Control Systems",
        "subject": "Control Engineering",
        "accuracy": 38,
        "attempts": 8,
        "trend": "stable",
        "last_studied": "2024-01-10",
        "recommended_actions": ["Focus on theory", "Solve previous year questions", "Join study group"],
    },
    {
        "topic": "Signals and Systems",
        "subject": "Communication",
        "accuracy": 52,
        "attempts": 15,
        "trend": "improving",
        "last_studied": "2024-01-20",
        "recommended_actions": ["Continue current study plan", "Take practice tests", "Review weak areas"],
    },
]


def overall_progress(tasks: Sequence[models.Task]) -> float:
    """Percentage of tasks with status `completed` (0 when there are none).

    Subject weightage plays no part; rounding is left to the caller.
    """
    if not tasks:
        return 0.0
    completed = sum(1 for t in tasks if t.status == "completed")
    return completed / len(tasks) * 100


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def performance_trends(tests: Iterable[models.Test]) -> PerformanceTrends:
    """Chronological score series and summary figures over attempted tests.

    Missing scores or accuracies count as 0, matching how the series is
    plotted. `improvement` compares the last attempt with the first and
    is 0 with fewer than two attempts.
    """
    attempted = sorted((t for t in tests if t.status == "attempted"), key=lambda t: t.created_at)
    scores = [t.score or 0 for t in attempted]
    accuracies = [t.accuracy or 0 for t in attempted]
    points = [
        TrendPoint(date=t.created_at.date().isoformat(), score=score, accuracy=accuracy)
        for t, score, accuracy in zip(attempted, scores, accuracies)
    ]
    return PerformanceTrends(
        score_trend=points,
        average_score=_mean(scores),
        average_accuracy=_mean(accuracies),
        total_tests=len(attempted),
        improvement=scores[-1] - scores[0] if len(scores) >= 2 else 0,
    )


def weak_topics() -> List[WeakTopic]:
    """Placeholder weak-topic analysis (fixed sample records)."""
    return [WeakTopic(**topic) for topic in _SAMPLE_WEAK_TOPICS]


def _priority_for(accuracy: float) -> str:
    if accuracy < 40:
        return "high"
    if accuracy < 60:
        return "medium"
    return "low"


def revision_recommendations(topics: Iterable[WeakTopic], today: date) -> List[RevisionRecommendation]:
    """Turn weak topics into study recommendations.

    Topics under 40% accuracy are high priority with a 3 day deadline;
    everything else gets a week.
    """
    out = []
    for topic in topics:
        urgent = topic.accuracy < 40
        out.append(RevisionRecommendation(
            topic=topic.topic,
            priority=_priority_for(topic.accuracy),
            study_time="2-3 hours daily" if urgent else "1-2 hours daily",
            resources=list(RECOMMENDED_RESOURCES),
            deadline=(today + timedelta(days=3 if urgent else 7)).isoformat(),
        ))
    return out


def days_remaining(exam_date: date, today: date) -> int:
    """Whole days until the exam; negative once it has passed."""
    return (exam_date - today).days


def dashboard_summary(tasks: Sequence[models.Task], subjects: Sequence[models.Subject],
                      today: date, exam_date: date,
                      target_score: Optional[int] = None) -> DashboardSummary:
    """Headline numbers for the dashboard page."""
    progress = overall_progress(tasks)
    today_iso = today.isoformat()
    return DashboardSummary(
        overall_progress=progress,
        overall_progress_rounded=math.floor(progress + 0.5),
        completed_tasks=sum(1 for t in tasks if t.status == "completed"),
        total_tasks=len(tasks),
        subject_count=len(subjects),
        todays_tasks=[TaskOut.model_validate(t) for t in tasks if t.due_date == today_iso],
        days_remaining=days_remaining(exam_date, today),
        target_score=target_score,
    )
