# ABOUTME: Content recommendation features and the recommendation engine.
# ABOUTME: Re-exports the engine, result types, and scoring helpers.

from .features import combined_features, interaction_success, taste_vector
from .recommender import (
    ContentRecommendation,
    ContentRecommendationEngine,
    FocusTopic,
    apply_diversity_filter,
    rule_based_score,
)

__all__ = [
    "ContentRecommendation",
    "ContentRecommendationEngine",
    "FocusTopic",
    "apply_diversity_filter",
    "combined_features",
    "interaction_success",
    "rule_based_score",
    "taste_vector",
]
