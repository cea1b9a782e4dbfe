"""
Temporal Status Classifier

Derives the compliance category of a milestone instance from its deadline,
its lifecycle status and its most recent completion.  Pure functions; the
result is recomputed on every read and never stored on the instance.

Usage:
    from calendario.services.status_classifier import classify_instance

    status = classify_instance(instance, today=date(2025, 3, 10))
    # -> DisplayStatus.DUE_TODAY
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from calendario.services.calendar_types import (
    DisplayStatus,
    LifecycleStatus,
    MilestoneInstance,
)

# Deadline used when no time is set (or the 00:00 placeholder is stored).
# Minute precision: the last whole minute of the day.
END_OF_DAY = time(23, 59)


def deadline_instant(deadline_date: date, deadline_time: time | None = None) -> datetime:
    """Instant at which the milestone is due.

    ``00:00`` is treated as "no time set", so such a milestone is due at
    the end of its day rather than at midnight.
    """
    if deadline_time is not None and (deadline_time.hour, deadline_time.minute) != (0, 0):
        return datetime.combine(deadline_date, deadline_time.replace(microsecond=0))
    return datetime.combine(deadline_date, END_OF_DAY)


def classify(
    deadline_date: date | None,
    deadline_time: time | None,
    status: LifecycleStatus,
    last_completion_at: datetime | None,
    today: date,
) -> DisplayStatus:
    """Return exactly one DisplayStatus.

    Completed instances are judged against the deadline instant; a
    completion that lands exactly on it is still on time.  Open instances
    are judged by calendar day against *today*.
    """
    if deadline_date is None:
        return DisplayStatus.NO_DATE

    if status is LifecycleStatus.COMPLETED:
        if last_completion_at is None:
            return DisplayStatus.COMPLETED_ON_TIME
        if last_completion_at > deadline_instant(deadline_date, deadline_time):
            return DisplayStatus.COMPLETED_LATE
        return DisplayStatus.COMPLETED_ON_TIME

    if deadline_date == today:
        return DisplayStatus.DUE_TODAY
    if deadline_date < today:
        return DisplayStatus.OVERDUE
    return DisplayStatus.PENDING_ON_TIME


def classify_instance(instance: MilestoneInstance, today: date) -> DisplayStatus:
    return classify(
        instance.deadline_date,
        instance.deadline_time,
        instance.status,
        instance.last_completion_at,
        today,
    )


def is_due_tomorrow(instance: MilestoneInstance, today: date) -> bool:
    """Open instance whose deadline is the day after *today*."""
    return (
        instance.status is LifecycleStatus.OPEN
        and instance.deadline_date is not None
        and instance.deadline_date == today + timedelta(days=1)
    )
