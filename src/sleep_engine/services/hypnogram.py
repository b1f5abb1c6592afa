"""Hypnogram normalisation for stored phase rows.

Rows come from storage in whatever state they were saved: unsorted,
overlapping, with stray timestamps or tiny slivers between phases. The
normaliser validates them, coalesces them into a clean non-overlapping
sequence and converts them to minutes relative to the session start.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

import structlog

from sleep_engine.core.numeric import round_half_up
from sleep_engine.core.timeutils import parse_timestamp, to_epoch_ms
from sleep_engine.schemas._coercion import coerce_enum, coerce_number
from sleep_engine.schemas.hypnogram import (
    HypnogramData,
    HypnogramPhase,
    HypnogramResult,
    HypnogramStage,
)
from sleep_engine.schemas.sleep import ConfidenceLevel

logger = structlog.get_logger()

MS_PER_MINUTE = 60_000
MERGE_GAP_MS = 15_000  # Same-stage rows this close are one phase
SNAP_WINDOW_MS = 3_000  # Transitions this close snap to their midpoint
SLIVER_MS = 10_000  # Rows shorter than this take a neighbour's stage

# Row stage vocabulary; REM is displayed under the core label
ROW_STAGES = {
    "awake": HypnogramStage.AWAKE,
    "light": HypnogramStage.LIGHT,
    "deep": HypnogramStage.DEEP,
    "rem": HypnogramStage.CORE,
}

# Tie-break order for sliver relabelling, later entries win
STAGE_ORDER = [
    HypnogramStage.DEEP,
    HypnogramStage.LIGHT,
    HypnogramStage.CORE,
    HypnogramStage.AWAKE,
]

CONFIDENCE_WEIGHTS = {
    ConfidenceLevel.LOW: 0.6,
    ConfidenceLevel.MEDIUM: 0.86,
    ConfidenceLevel.HIGH: 1.0,
}


@dataclass(frozen=True)
class TimedSegment:
    """Validated phase in absolute epoch milliseconds."""

    stage: HypnogramStage
    start_ms: int
    end_ms: int
    cycle_number: int
    confidence: ConfidenceLevel

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


def parse_row(row: Any) -> TimedSegment | None:
    """Validate one stored row, returning None when it must be dropped."""
    if not isinstance(row, Mapping):
        return None

    stage_value = row.get("stage")
    stage = ROW_STAGES.get(stage_value.lower()) if isinstance(stage_value, str) else None
    if stage is None:
        return None

    start = parse_timestamp(row.get("start_time"))
    end = parse_timestamp(row.get("end_time"))
    if start is None or end is None:
        return None
    start_ms = to_epoch_ms(start)
    end_ms = to_epoch_ms(end)
    # Rows that round to zero minutes never reach coalescing
    if round_half_up((end_ms - start_ms) / MS_PER_MINUTE) <= 0:
        return None

    cycle = coerce_number(row.get("cycle_number"))
    cycle_number = max(0, round_half_up(cycle)) if cycle is not None else 0
    confidence = coerce_enum(row.get("confidence"), ConfidenceLevel, ConfidenceLevel.LOW)

    return TimedSegment(
        stage=stage,
        start_ms=start_ms,
        end_ms=end_ms,
        cycle_number=cycle_number,
        confidence=confidence or ConfidenceLevel.LOW,
    )


def merge_same_stage(segments: list[TimedSegment]) -> list[TimedSegment]:
    """Merge consecutive same-stage segments separated by at most MERGE_GAP_MS."""
    merged: list[TimedSegment] = []
    for segment in segments:
        if merged:
            last = merged[-1]
            if last.stage == segment.stage and segment.start_ms - last.end_ms <= MERGE_GAP_MS:
                merged[-1] = replace(last, end_ms=max(last.end_ms, segment.end_ms))
                continue
        merged.append(segment)
    return merged


def snap_transitions(segments: list[TimedSegment]) -> list[TimedSegment]:
    """Move near-coincident boundaries onto their midpoint."""
    snapped = list(segments)
    for index in range(len(snapped) - 1):
        current = snapped[index]
        following = snapped[index + 1]
        gap = following.start_ms - current.end_ms
        if gap != 0 and abs(gap) <= SNAP_WINDOW_MS:
            midpoint = (current.end_ms + following.start_ms) // 2
            snapped[index] = replace(current, end_ms=midpoint)
            snapped[index + 1] = replace(following, start_ms=midpoint)
    return snapped


def trim_overlaps(segments: list[TimedSegment]) -> tuple[list[TimedSegment], int]:
    """Start each segment no earlier than the previous end.

    Returns:
        Trimmed segments and how many were trimmed to nothing
    """
    trimmed: list[TimedSegment] = []
    dropped = 0
    for segment in segments:
        if trimmed and segment.start_ms < trimmed[-1].end_ms:
            segment = replace(segment, start_ms=trimmed[-1].end_ms)
            if segment.end_ms <= segment.start_ms:
                dropped += 1
                continue
        trimmed.append(segment)
    return trimmed, dropped


def relabel_slivers(segments: list[TimedSegment]) -> list[TimedSegment]:
    """Give sub-SLIVER_MS segments the stage of their dominant neighbour.

    A neighbour's weight is its duration times its confidence weight; ties go
    to the stage that comes later in STAGE_ORDER.
    """
    relabelled = list(segments)
    for index in range(1, len(segments) - 1):
        segment = segments[index]
        if segment.duration_ms >= SLIVER_MS:
            continue
        before = segments[index - 1]
        after = segments[index + 1]
        before_weight = before.duration_ms * CONFIDENCE_WEIGHTS[before.confidence]
        after_weight = after.duration_ms * CONFIDENCE_WEIGHTS[after.confidence]
        if before_weight > after_weight:
            stage = before.stage
        elif after_weight > before_weight:
            stage = after.stage
        else:
            stage = max(before.stage, after.stage, key=STAGE_ORDER.index)
        relabelled[index] = replace(segment, stage=stage)
    return relabelled


def coalesce_phases(segments: list[TimedSegment]) -> tuple[list[TimedSegment], int]:
    """Clean a start-sorted segment list.

    Applies, in order: same-stage merging, transition snapping, overlap
    trimming and sliver relabelling, then merges again so relabelled slivers
    join their neighbours.

    Returns:
        Coalesced segments and how many were dropped by overlap trimming
    """
    merged = merge_same_stage(segments)
    snapped = snap_transitions(merged)
    trimmed, dropped = trim_overlaps(snapped)
    relabelled = relabel_slivers(trimmed)
    return merge_same_stage(relabelled), dropped


class HypnogramNormalizer:
    """Turn stored phase rows into display-ready hypnogram data."""

    def __init__(self) -> None:
        """Initialize hypnogram normalizer."""
        self.logger = logger.bind(service="hypnogram")

    def normalize(self, rows: Iterable[Any]) -> HypnogramResult:
        """Validate, coalesce and relativise phase rows.

        Args:
            rows: Stored rows with stage, start_time, end_time, cycle_number
                and confidence keys

        Returns:
            HypnogramResult; ``data`` is None when no row survived
        """
        rows = list(rows)
        if not rows:
            return HypnogramResult(data=None, dropped_rows=0)

        segments: list[TimedSegment] = []
        dropped = 0
        for row in rows:
            segment = parse_row(row)
            if segment is None:
                dropped += 1
                continue
            segments.append(segment)

        if not segments:
            self.logger.debug("No valid hypnogram rows", dropped_rows=dropped)
            return HypnogramResult(data=None, dropped_rows=dropped)

        segments.sort(key=lambda segment: segment.start_ms)
        segments, trimmed_away = coalesce_phases(segments)
        dropped += trimmed_away

        session_start = segments[0].start_ms
        session_end = max(segment.end_ms for segment in segments)
        wake_min = round_half_up((session_end - session_start) / MS_PER_MINUTE)
        if wake_min <= 0:
            return HypnogramResult(data=None, dropped_rows=dropped + len(segments))

        phases: list[HypnogramPhase] = []
        for segment in segments:
            duration_min = round_half_up(segment.duration_ms / MS_PER_MINUTE)
            if duration_min <= 0:
                dropped += 1
                continue
            phases.append(
                HypnogramPhase(
                    stage=segment.stage,
                    start_min=round_half_up((segment.start_ms - session_start) / MS_PER_MINUTE),
                    duration_min=duration_min,
                    cycle_number=segment.cycle_number,
                    confidence=segment.confidence,
                )
            )

        if not phases:
            return HypnogramResult(data=None, dropped_rows=dropped)

        self.logger.debug(
            "Normalised hypnogram",
            phases=len(phases),
            dropped_rows=dropped,
            wake_min=wake_min,
        )

        return HypnogramResult(
            data=HypnogramData(phases=phases, sleep_onset_min=0, wake_min=wake_min),
            dropped_rows=dropped,
        )


def build_hypnogram_data(rows: Iterable[Any]) -> HypnogramResult:
    """Normalise stored phase rows with a fresh normalizer."""
    return HypnogramNormalizer().normalize(rows)
