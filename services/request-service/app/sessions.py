"""
Per-day tracking for daily engagements.

Each day of a daily request needs its own dual confirmation. Sessions live in
the request's `daily_sessions` JSON array; every change assigns a new list so
the ORM sees the column as modified.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from dateutil import parser

from .errors import InvalidDayIndex, InvalidState, NotEligible, ValidationError
from .events import record
from .gate import DEFAULT_FEE_RATE, finalize, require_party
from .models import Party, PricingType, RequestStatus
from .pricing import as_utc, ensure_future


def build_sessions(start: datetime, days: int) -> list[dict]:
    start = as_utc(start)
    scheduled_time = start.strftime("%H:%M")
    return [
        {
            "day": i + 1,
            "scheduled_date": (start + timedelta(days=i)).isoformat(),
            "scheduled_time": scheduled_time,
            "client_completed": False,
            "provider_completed": False,
        }
        for i in range(days)
    ]


def session_done(session: dict) -> bool:
    return bool(session["client_completed"] and session["provider_completed"])


def all_sessions_done(sessions: list[dict]) -> bool:
    return bool(sessions) and all(session_done(s) for s in sessions)


def _check_eligible(request):
    status = RequestStatus(request.status)
    if status is RequestStatus.PENDING_COMPLETION:
        return
    if status is RequestStatus.ACCEPTED and request.payment_completed_at is not None:
        return
    raise NotEligible(
        f"Days can only be confirmed once the service is accepted and paid. Current status: {status.value}"
    )


def _require_daily(request):
    if request.pricing_type != PricingType.DAILY:
        raise InvalidState("Only daily requests have daily sessions")


def _locate(request, day: int) -> int:
    sessions = request.daily_sessions or []
    for idx, session in enumerate(sessions):
        if session["day"] == day:
            return idx
    raise InvalidDayIndex(f"Day {day} is out of range (1..{len(sessions)})")


def confirm_day(
    request,
    day: int,
    actor_id: str,
    completed: bool = True,
    now: datetime | None = None,
    events: list | None = None,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
) -> bool:
    """
    Set the caller's confirmation flag on one day.

    Repeating the current value is a no-op. A day confirmed by both parties is
    frozen. When every day is confirmed by both parties the request completes;
    the return value tells whether this call completed it.
    """
    party = require_party(request, actor_id)
    _require_daily(request)
    _check_eligible(request)
    idx = _locate(request, day)

    field = "client_completed" if party is Party.CLIENT else "provider_completed"
    sessions = [dict(s) for s in request.daily_sessions]
    session = sessions[idx]

    if bool(session[field]) == completed:
        return False
    if session_done(session):
        raise InvalidState(f"Day {day} was confirmed by both parties and can no longer change")

    session[field] = completed
    request.daily_sessions = sessions
    record(events, "request.day_confirmed", request, day=day, party=party.value, completed=completed)

    if all_sessions_done(sessions):
        finalize(request, now, events, fee_rate)
        return True
    return False


def reschedule_day(
    request,
    day: int,
    actor_id: str,
    scheduled_date: datetime | None = None,
    scheduled_time: str | None = None,
    events: list | None = None,
):
    """Move one day's date and/or time; frozen days cannot move."""
    require_party(request, actor_id)
    _require_daily(request)
    _check_eligible(request)
    idx = _locate(request, day)

    if scheduled_date is None and scheduled_time is None:
        raise ValidationError("scheduled_date or scheduled_time is required")

    sessions = [dict(s) for s in request.daily_sessions]
    session = sessions[idx]
    if session_done(session):
        raise InvalidState(f"Day {day} was confirmed by both parties and can no longer change")

    when = as_utc(scheduled_date) if scheduled_date is not None else parser.isoparse(session["scheduled_date"])
    if scheduled_time is not None:
        try:
            hours, minutes = (int(part) for part in scheduled_time.split(":"))
            when = when.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        except ValueError:
            raise ValidationError("scheduled_time must be HH:MM")

    ensure_future(when, "scheduled_date")

    session["scheduled_date"] = as_utc(when).isoformat()
    session["scheduled_time"] = when.strftime("%H:%M")
    request.daily_sessions = sessions
    record(events, "request.day_rescheduled", request, day=day, scheduled_date=session["scheduled_date"])


def pending_days(request) -> list[int]:
    """Days still waiting on at least one confirmation."""
    return [s["day"] for s in (request.daily_sessions or []) if not session_done(s)]

