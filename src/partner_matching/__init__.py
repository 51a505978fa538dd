# ABOUTME: Study-partner compatibility features and the ML matching engine.
# ABOUTME: Re-exports the engine, result types, and feature helpers.

from .engine import (
    MatchPrediction,
    MatchResult,
    MLPartnerMatchingEngine,
    PartnershipOutcome,
)
from .features import UserMatchFeatures, combine_features, extract_user_features, pairwise_features

__all__ = [
    "MLPartnerMatchingEngine",
    "MatchPrediction",
    "MatchResult",
    "PartnershipOutcome",
    "UserMatchFeatures",
    "combine_features",
    "extract_user_features",
    "pairwise_features",
]
