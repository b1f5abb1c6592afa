"""Timeline invariant checks, drift correction and error classification.

A synthesised timeline must satisfy three invariants:

    - DURATION_MISMATCH: event durations sum to the target within 1 minute
    - NON_POSITIVE_DURATION: every event lasts at least one whole minute
    - GAP: each event starts exactly where the previous one ended

A violation means the synthesis arithmetic is wrong, not that the input was
bad, so it is fatal for the computation. Input problems (missing timing,
nothing to distribute) are classified separately and are not fatal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from sleep_engine.core.numeric import round_half_up
from sleep_engine.core.timeutils import add_minutes, minutes_between
from sleep_engine.schemas.sleep import SleepStage
from sleep_engine.schemas.timeline import CycleBreakdown, CycleMap, PhaseEvent

logger = structlog.get_logger()

DURATION_TOLERANCE_MINUTES = 1
MAX_DRIFT_CORRECTION_MINUTES = 5


class TimelineErrorType(str, Enum):
    """Why a timeline could not be produced."""

    # Input problems
    MISSING_TIMING = "missing_timing"
    NO_DURATION = "no_duration"

    # Invariant violations
    DURATION_MISMATCH = "duration_mismatch"
    NON_POSITIVE_DURATION = "non_positive_duration"
    GAP = "gap"


FATAL_ERROR_TYPES = frozenset(
    {
        TimelineErrorType.DURATION_MISMATCH,
        TimelineErrorType.NON_POSITIVE_DURATION,
        TimelineErrorType.GAP,
    }
)


@dataclass
class TimelineError:
    """Structured timeline failure.

    Attributes:
        error_type: What went wrong
        message: Human-readable description
        details: Extra context for logs
    """

    error_type: TimelineErrorType
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fatal(self) -> bool:
        """Whether this is an internal contract violation."""
        return self.error_type in FATAL_ERROR_TYPES

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to dict for structured logging.

        Returns:
            Dict suitable for structlog context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "is_fatal": self.is_fatal,
            **self.details,
        }


class TimelineInvariantError(Exception):
    """Raised when a synthesised timeline breaks an invariant."""

    def __init__(self, violations: list[TimelineError]) -> None:
        self.violations = violations
        summary = "; ".join(violation.message for violation in violations)
        super().__init__(f"Timeline invariant violated: {summary}")


@dataclass
class SynthesisResult:
    """Either a cycle map or the reason there is none."""

    output: CycleMap | None = None
    error: TimelineError | None = None

    @property
    def ok(self) -> bool:
        """Whether a cycle map was produced."""
        return self.output is not None


def check_timeline_invariants(
    events: list[PhaseEvent], target_minutes: int
) -> list[TimelineError]:
    """Check a timeline against its invariants.

    Args:
        events: Timeline in chronological order
        target_minutes: Duration the timeline must cover

    Returns:
        Every violation found (empty when the timeline is valid)
    """
    violations: list[TimelineError] = []

    total = sum(event.duration_minutes for event in events)
    if abs(total - target_minutes) > DURATION_TOLERANCE_MINUTES:
        violations.append(
            TimelineError(
                error_type=TimelineErrorType.DURATION_MISMATCH,
                message=f"total duration {total} != {target_minutes} (+/-1)",
                details={"total_minutes": total, "target_minutes": target_minutes},
            )
        )

    for index, event in enumerate(events):
        if event.duration_minutes <= 0:
            violations.append(
                TimelineError(
                    error_type=TimelineErrorType.NON_POSITIVE_DURATION,
                    message=f"non-positive duration at index {index}",
                    details={"index": index, "duration_minutes": event.duration_minutes},
                )
            )

    for index in range(len(events) - 1):
        if events[index].end_time != events[index + 1].start_time:
            violations.append(
                TimelineError(
                    error_type=TimelineErrorType.GAP,
                    message=f"gap at index {index}",
                    details={
                        "index": index,
                        "end_time": events[index].end_time.isoformat(),
                        "next_start_time": events[index + 1].start_time.isoformat(),
                    },
                )
            )

    return violations


def ensure_timeline_invariants(events: list[PhaseEvent], target_minutes: int) -> None:
    """Raise TimelineInvariantError if any invariant is violated."""
    violations = check_timeline_invariants(events, target_minutes)
    if violations:
        for violation in violations:
            logger.error("Timeline invariant violated", **violation.to_log_dict())
        raise TimelineInvariantError(violations)


def apply_drift_correction(events: list[PhaseEvent], target_end: datetime) -> list[PhaseEvent]:
    """Absorb a small gap between the timeline end and the recorded end.

    When the last event ends within MAX_DRIFT_CORRECTION_MINUTES of the target
    end, its duration is adjusted (never below one minute) so the timeline ends
    on the target. Larger drift is logged and the timeline is left as is.

    Args:
        events: Timeline in chronological order
        target_end: Recorded end of the night (datetime)

    Returns:
        New event list
    """
    if not events:
        return []

    last = events[-1]
    drift = minutes_between(last.end_time, target_end)
    if abs(drift) > MAX_DRIFT_CORRECTION_MINUTES:
        logger.warning(
            "Timeline drift exceeds correction limit",
            drift_minutes=round(drift, 2),
            limit_minutes=MAX_DRIFT_CORRECTION_MINUTES,
        )
        return list(events)

    adjusted = max(1, last.duration_minutes + round_half_up(drift))
    if adjusted == last.duration_minutes:
        return list(events)

    corrected = last.model_copy(
        update={
            "duration_minutes": adjusted,
            "end_time": add_minutes(last.start_time, adjusted),
        }
    )
    return [*events[:-1], corrected]


def build_cycle_breakdown(events: list[PhaseEvent], cycles: int) -> list[CycleBreakdown]:
    """Summarise stage minutes per cycle, skipping cycles with no events."""
    breakdown: list[CycleBreakdown] = []

    for cycle_number in range(1, cycles + 1):
        cycle_events = [event for event in events if event.cycle_number == cycle_number]
        if not cycle_events:
            continue

        minutes = {stage: 0 for stage in SleepStage}
        for event in cycle_events:
            minutes[event.stage] += event.duration_minutes

        deep = minutes[SleepStage.DEEP]
        rem = minutes[SleepStage.REM]
        light = minutes[SleepStage.LIGHT]
        if deep >= rem and deep >= light:
            dominant = SleepStage.DEEP
        elif rem >= light:
            dominant = SleepStage.REM
        else:
            dominant = SleepStage.LIGHT

        breakdown.append(
            CycleBreakdown(
                cycle_number=cycle_number,
                start_time=cycle_events[0].start_time,
                end_time=cycle_events[-1].end_time,
                duration_minutes=sum(minutes.values()),
                dominant_stage=dominant,
                deep_minutes=deep,
                rem_minutes=rem,
                light_minutes=light,
                awake_minutes=minutes[SleepStage.AWAKE],
            )
        )

    return breakdown


class TimelineCursor:
    """Append contiguous whole-minute events from a start time."""

    def __init__(self, start: datetime, capacity: int | None = None) -> None:
        self.cursor = start
        self.capacity = capacity
        self.used = 0
        self.events: list[PhaseEvent] = []

    @property
    def remaining(self) -> int | None:
        """Minutes left before the capacity is reached (None when unbounded)."""
        if self.capacity is None:
            return None
        return max(0, self.capacity - self.used)

    def push(self, stage: SleepStage, minutes: int, cycle_number: int) -> int:
        """Append an event, truncated to the remaining capacity.

        Returns:
            Minutes actually appended (0 when nothing was added)
        """
        if self.remaining is not None:
            minutes = min(minutes, self.remaining)
        if minutes <= 0:
            return 0
        end = add_minutes(self.cursor, minutes)
        self.events.append(
            PhaseEvent(
                stage=stage,
                start_time=self.cursor,
                end_time=end,
                duration_minutes=minutes,
                cycle_number=cycle_number,
            )
        )
        self.cursor = end
        self.used += minutes
        return minutes
