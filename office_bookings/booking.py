from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable

REASON_ORDERING = "ordering"
REASON_CONFLICT = "conflict"


@dataclass(frozen=True)
class Reservation:
    resource_name: str
    start_time: datetime
    end_time: datetime
    title: str = ""
    owner: str | None = None


@dataclass(frozen=True)
class BookingDecision:
    accepted: bool
    reason: str | None = None
    conflict: Any = None


class BookingRejected(ValueError):
    def __init__(self, reason: str, message: str, conflict: Any = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.conflict = conflict


def parse_time_of_day(value: str) -> time:
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError) as error:
        raise ValueError(f"Invalid time of day {value!r}. Expected format: HH:MM") from error


def build_candidate_interval(day: date, start_text: str, end_text: str) -> tuple[datetime, datetime]:
    """Combine a base date with two ``HH:MM`` strings.

    Both timestamps land on ``day``. An end time earlier than the start is
    not rolled over to the next day; the validator rejects it as ``ordering``.
    """
    start = datetime.combine(day, parse_time_of_day(start_text))
    end = datetime.combine(day, parse_time_of_day(end_text))
    return start, end


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap by even one instant.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 09:00-10:00 and 10:00-11:00) do not overlap.
    """
    return new_start < exist_end and exist_start < new_end


def validate_booking(candidate: Reservation, existing_reservations: Iterable[Any]) -> BookingDecision:
    """Decide whether ``candidate`` may be created.

    ``existing_reservations`` is a snapshot supplied by the caller. Items need
    ``resource_name``, ``start_time`` and ``end_time`` attributes; those on
    other resources are ignored.
    """
    if candidate.start_time >= candidate.end_time:
        return BookingDecision(accepted=False, reason=REASON_ORDERING)

    for reservation in existing_reservations:
        if reservation.resource_name != candidate.resource_name:
            continue
        if has_time_overlap(candidate.start_time, candidate.end_time, reservation.start_time, reservation.end_time):
            return BookingDecision(accepted=False, reason=REASON_CONFLICT, conflict=reservation)
    return BookingDecision(accepted=True)


def ensure_bookable(candidate: Reservation, existing_reservations: Iterable[Any]) -> None:
    decision = validate_booking(candidate, existing_reservations)
    if decision.accepted:
        return
    if decision.reason == REASON_ORDERING:
        raise BookingRejected(REASON_ORDERING, "Booking end time must be later than its start time.")
    raise BookingRejected(
        REASON_CONFLICT,
        f"Booking overlaps with an existing booking on {candidate.resource_name}.",
        conflict=decision.conflict,
    )
