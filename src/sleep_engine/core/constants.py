"""Constants shared by more than one service."""

from dataclasses import dataclass

from sleep_engine.schemas.sleep import DataSource

DEFAULT_SLEEP_GOAL_MINUTES = 480  # Used when the profile has no goal
DEFAULT_AGE = 35  # Assumed when age is missing or implausible
MAX_PLAUSIBLE_AGE = 120
NEUTRAL_COMPONENT_SCORE = 0.5  # Component score when its data is absent


@dataclass(frozen=True)
class SourceReliability:
    """How far a data source can be trusted."""

    factor: float  # Shrinkage toward the prior mean, 1.0 = none
    stage_data_valid: bool  # Whether stage minutes from this source are meaningful


# Wearables with PPG and accelerometer track PSG best; inferred sources least
SOURCE_RELIABILITY: dict[DataSource, SourceReliability] = {
    DataSource.WEARABLE: SourceReliability(factor=1.0, stage_data_valid=True),
    DataSource.HEALTH_CONNECT: SourceReliability(factor=0.95, stage_data_valid=True),
    DataSource.MANUAL: SourceReliability(factor=0.85, stage_data_valid=False),
    DataSource.PREDICTION: SourceReliability(factor=0.85, stage_data_valid=False),
    DataSource.DIGITAL_WELLBEING: SourceReliability(factor=0.7, stage_data_valid=False),
    DataSource.USAGE_STATS: SourceReliability(factor=0.65, stage_data_valid=False),
}

LOW_RELIABILITY_SOURCES = frozenset({DataSource.DIGITAL_WELLBEING, DataSource.USAGE_STATS})


def get_source_reliability(source: DataSource) -> SourceReliability:
    """Reliability for a source, defaulting to the manual tier."""
    return SOURCE_RELIABILITY.get(source, SOURCE_RELIABILITY[DataSource.MANUAL])
