# ABOUTME: Bundles the four study predictors behind one object for service wiring.
# ABOUTME: Reports start-up and per-model health without holding global state.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from src.content.recommender import ContentRecommendationEngine
from src.engagement.predictor import EngagementPredictor
from src.partner_matching.engine import MLPartnerMatchingEngine
from src.study_plan.optimizer import StudyPlanOptimizer

logger = logging.getLogger(__name__)


@dataclass
class MLEngine:
    """Holds one instance of each predictor; build one per process or request scope."""

    partner_matching: MLPartnerMatchingEngine
    study_plan: StudyPlanOptimizer
    content: ContentRecommendationEngine
    engagement: EngagementPredictor

    @classmethod
    def create_default(cls, seed: Optional[int] = 42, epochs: int = 100) -> "MLEngine":
        return cls(
            partner_matching=MLPartnerMatchingEngine(seed=seed, epochs=epochs),
            study_plan=StudyPlanOptimizer(seed=seed, epochs=epochs),
            content=ContentRecommendationEngine(seed=seed, epochs=epochs),
            engagement=EngagementPredictor(),
        )

    def model_status(self) -> Dict[str, bool]:
        return {
            "partner_matching": self.partner_matching.is_trained,
            "study_plan": self.study_plan.is_trained,
            "content_recommendation": self.content.is_trained,
            "engagement_prediction": self.engagement.is_trained,
        }

    def initialize(self) -> None:
        status = self.model_status()
        logger.info(
            "ML engine initialized: %d/%d models trained (%s)",
            sum(status.values()),
            len(status),
            ", ".join(name for name, trained in status.items() if trained) or "rule-based fallbacks only",
        )

    def get_health(self) -> Dict[str, object]:
        # Every predictor has a rule-based fallback, so untrained models do not degrade health.
        return {"status": "healthy", "models": self.model_status()}
