"""Engine components for retention analysis."""

from .base import BaseComponent
from .signals import SignalExtractor
from .classifier import RiskClassifier
from .churn import ChurnEstimator
from .forecast import RevenueForecaster
from .funnel import FunnelDetector
from .cohorts import CohortAnalyzer
from .stability import StabilityScorer
from .recommendations import RecommendationPrioritizer

__all__ = [
    "BaseComponent",
    "SignalExtractor",
    "RiskClassifier",
    "ChurnEstimator",
    "RevenueForecaster",
    "FunnelDetector",
    "CohortAnalyzer",
    "StabilityScorer",
    "RecommendationPrioritizer",
]
