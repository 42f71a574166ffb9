"""
Gym Retention Decision Engine

Rule-based churn risk classification, revenue forecasting, stability
scoring and intervention prioritization for subscription gyms.
"""

from .config import EngineConfig, DEFAULT_CONFIG
from .engine import EngineResult, RetentionEngine, generate_sample_roster
from .errors import InvalidInputError
from .types import (
    ContactEvent,
    EngagementClass,
    FunnelCounts,
    InterventionType,
    Member,
    MemberStatus,
    MonthlyMetrics,
    RiskTier,
)

__all__ = [
    "RetentionEngine",
    "EngineResult",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "InvalidInputError",
    "generate_sample_roster",
    "Member",
    "ContactEvent",
    "MonthlyMetrics",
    "FunnelCounts",
    "MemberStatus",
    "EngagementClass",
    "RiskTier",
    "InterventionType",
]
__version__ = "1.0.0"
