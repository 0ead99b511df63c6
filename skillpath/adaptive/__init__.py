"""
Adaptive Learning Engine.

Components:
- PrerequisiteResolver: prerequisite graph, blocking and struggle checks
- RecommendationEngine: prioritized recommendations and learning paths
- LearningEngine: main orchestration layer
"""
from skillpath.adaptive.learning_engine import LearningEngine, load_curriculum
from skillpath.adaptive.prerequisite_resolver import PrerequisiteResolver, StrugglePolicy
from skillpath.adaptive.recommendation_engine import RecommendationEngine

__all__ = [
    # Main engine
    "LearningEngine",
    "load_curriculum",
    # Component classes
    "PrerequisiteResolver",
    "RecommendationEngine",
    "StrugglePolicy",
]
