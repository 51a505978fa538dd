# ABOUTME: Study plan optimization from historical study sessions.
# ABOUTME: Re-exports the optimizer, plan types, and pattern analysis.

from .optimizer import (
    DaySchedule,
    OptimizationFactors,
    PerformanceMetrics,
    ScheduledSession,
    SessionOptimization,
    StudyInsights,
    StudyPlanOptimizer,
    StudyPlanRecommendation,
    StudyPreferences,
)
from .patterns import StudyPattern, analyze_user_pattern, session_features

__all__ = [
    "DaySchedule",
    "OptimizationFactors",
    "PerformanceMetrics",
    "ScheduledSession",
    "SessionOptimization",
    "StudyInsights",
    "StudyPattern",
    "StudyPlanOptimizer",
    "StudyPlanRecommendation",
    "StudyPreferences",
    "analyze_user_pattern",
    "session_features",
]
