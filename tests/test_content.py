# ABOUTME: Validates content features and the content recommendation engine.
# ABOUTME: Covers rule-based scoring, diversity, practice problems, focus topics, and training.

from dataclasses import replace
from datetime import timedelta

import pytest

from builders import NOW, activity, interaction, sessions
from src.common.schemas import ContentContext, ContentItem
from src.content import (
    ContentRecommendation,
    ContentRecommendationEngine,
    apply_diversity_filter,
    combined_features,
    interaction_success,
    rule_based_score,
    taste_vector,
)
from src.content.features import CONTENT_MODEL_WIDTH, TASTE_WIDTH, build_catalog, learner_from_activity


def _item(content_id, subject="math", content_type="practice", difficulty="intermediate", **fields):
    return ContentItem(content_id, content_type, subject, difficulty, title=f"Item {content_id}", **fields)


def _rec(content_id, score, content_type, subject):
    return ContentRecommendation.from_item(_item(content_id, subject, content_type), score, 0.6, "fallback")


def _interactions():
    rows = []
    contents = [
        ("c0", "practice", "intermediate"),
        ("c1", "video", "beginner"),
        ("c2", "quiz", "advanced"),
        ("c3", "practice", "intermediate"),
        ("c4", "article", "expert"),
    ]
    for u in range(6):
        for i in range(10):
            content_id, content_type, difficulty = contents[(u + i) % len(contents)]
            good = (u + i) % 3 != 0
            rows.append(
                interaction(
                    f"u{u}",
                    content_id,
                    content_type=content_type,
                    difficulty=difficulty,
                    rating=5.0 if good else 2.0,
                    completed=good,
                    learning_outcome=0.9 if good else 0.2,
                    timestamp=NOW - timedelta(days=i),
                )
            )
    return rows


def test_interaction_success_weights():
    assert interaction_success(interaction("u", "c", rating=5.0, completed=True, learning_outcome=1.0)) == pytest.approx(1.0)
    assert interaction_success(interaction("u", "c", rating=0.0, completed=False, learning_outcome=0.0)) == 0.0


def test_taste_vector_defaults_to_neutral():
    assert taste_vector([]).tolist() == [0.5] * TASTE_WIDTH


def test_combined_features_width():
    learner = learner_from_activity(activity("u1"), NOW)
    vector = combined_features(learner, _item("c1"), ContentContext(learning_objective="exam"))
    assert vector.shape == (CONTENT_MODEL_WIDTH,)
    assert vector[-1] == 1.0


def test_build_catalog_uses_mean_statistics():
    catalog = build_catalog(
        [
            interaction("u1", "c1", rating=5.0, completed=True),
            interaction("u2", "c1", rating=3.0, completed=False),
        ]
    )
    assert catalog["c1"].user_rating == pytest.approx(0.8)
    assert catalog["c1"].completion_rate == pytest.approx(0.5)


def test_rule_based_score_is_clamped_and_rewards_time_fit():
    strong = _item("c1", content_quality=1.0, user_rating=1.0, completion_rate=1.0)
    assert rule_based_score(0.5, strong, 60) == 1.0

    long_item = _item("c2", estimated_time=120.0)
    assert rule_based_score(0.5, long_item, 30) < rule_based_score(0.5, long_item, 120)


def test_diversity_filter_prefers_new_types_then_backfills():
    recs = [
        _rec("a", 0.9, "video", "math"),
        _rec("b", 0.8, "video", "math"),
        _rec("c", 0.7, "quiz", "math"),
        _rec("d", 0.6, "video", "physics"),
    ]
    selected = apply_diversity_filter(recs, limit=3)
    assert [r.content_id for r in selected] == ["a", "c", "d"]

    selected = apply_diversity_filter(recs, limit=4)
    assert [r.content_id for r in selected] == ["a", "c", "d", "b"]


def test_empty_catalog_returns_fallback_recommendations():
    engine = ContentRecommendationEngine(epochs=3)
    recs = engine.recommend_content(activity("u1"), now=NOW)

    assert [r.content_id for r in recs] == ["fallback-0", "fallback-1"]
    assert [r.subject for r in recs] == ["math", "physics"]
    assert all(r.source == "fallback" for r in recs)


def test_fallback_without_subjects_uses_general():
    engine = ContentRecommendationEngine(epochs=3)
    recs = engine.recommend_content(activity("u1", subjects=()), now=NOW)
    assert [r.subject for r in recs] == ["General"]


def test_untrained_engine_scores_registered_catalog_with_rules():
    engine = ContentRecommendationEngine(epochs=3)
    engine.register_content(
        [
            _item("c1", difficulty="advanced", content_quality=0.9, user_rating=0.9, completion_rate=0.9),
            _item("c2", content_type="video", content_quality=0.0),
            _item("c3", subject="history"),
        ]
    )
    recs = engine.recommend_content(activity("u1"), now=NOW)

    assert {r.content_id for r in recs} == {"c1", "c2"}
    assert recs[0].content_id == "c1"
    assert recs[0].prerequisites == ["Basic math"]
    assert all(r.source == "fallback" for r in recs)
    assert all(0.0 <= r.relevance_score <= 1.0 for r in recs)


def test_current_subject_narrows_candidates():
    engine = ContentRecommendationEngine(epochs=3)
    engine.register_content([_item("c1"), _item("c3", subject="history")])
    recs = engine.recommend_content(activity("u1"), ContentContext(current_subject="History"), now=NOW)
    assert [r.content_id for r in recs] == ["c3"]


def test_practice_problem_fallback_steps_difficulty_up():
    engine = ContentRecommendationEngine(epochs=3)
    user = activity("u1", study_sessions=sessions("u1", 5, ratings=[5.0] * 5))

    problems = engine.recommend_practice_problems(user, "math", current_difficulty=0.5, count=4, now=NOW)

    assert len(problems) == 4
    assert all(p.content_type == "practice" for p in problems)
    assert problems[0].difficulty == "advanced"


def test_focus_topics_flag_declining_subject():
    history = list(sessions("u1", 4, days=4, ratings=[5.0, 5.0, 2.0, 1.0]))
    history[2] = replace(history[2], title="fractions")
    history[3] = replace(history[3], title="fractions")
    engine = ContentRecommendationEngine(epochs=3)

    topics = engine.predict_focus_topics(activity("u1", study_sessions=history), time_horizon=7, now=NOW)

    assert len(topics) == 1
    topic = topics[0]
    assert topic.subject == "math"
    assert topic.topic == "fractions"
    assert topic.urgency == pytest.approx(0.7)
    assert topic.reason == "Recent performance decline detected"
    assert topic.recommended_content


def test_too_few_interactions_keeps_engine_untrained():
    engine = ContentRecommendationEngine(epochs=3)
    engine.train_models(_interactions()[:20])
    assert engine.is_trained is False


def test_trained_engine_blends_models():
    engine = ContentRecommendationEngine(seed=0, epochs=3)
    engine.train_models(_interactions())
    assert engine.is_trained
    assert set(engine.collaborative_models) == {"c0", "c1", "c2", "c3", "c4"}

    user = activity("u0", subjects=("math",))
    recs = engine.recommend_content(user, limit=3, now=NOW)
    assert len(recs) == 3
    assert all(r.source == "ml" for r in recs)
    assert all(0.0 <= r.relevance_score <= 1.0 for r in recs)

    problems = engine.recommend_practice_problems(user, "math", current_difficulty=0.5, now=NOW)
    assert {p.content_id for p in problems} == {"c0", "c3"}
