"""Engine services."""

from sleep_engine.services.baseline import BaselineCalculator
from sleep_engine.services.cycle_distributor import CycleDistributor, distribute_sleep_cycles
from sleep_engine.services.hypnogram import HypnogramNormalizer, build_hypnogram_data
from sleep_engine.services.phase_timeline import PhaseTimelineGenerator, generate_phase_timeline
from sleep_engine.services.physiology import PhysiologyEstimator
from sleep_engine.services.prediction import SleepPredictionService, build_premium_prediction
from sleep_engine.services.scoring import ScoreCalculator, calculate_sleep_score
from sleep_engine.services.stage_predictor import StageDistributionPredictor
from sleep_engine.services.summaries import SummaryGenerator

__all__ = [
    "BaselineCalculator",
    "CycleDistributor",
    "HypnogramNormalizer",
    "PhaseTimelineGenerator",
    "PhysiologyEstimator",
    "ScoreCalculator",
    "SleepPredictionService",
    "StageDistributionPredictor",
    "SummaryGenerator",
    "build_hypnogram_data",
    "build_premium_prediction",
    "calculate_sleep_score",
    "distribute_sleep_cycles",
    "generate_phase_timeline",
]
