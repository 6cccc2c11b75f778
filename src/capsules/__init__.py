"""Decision capsules: consolidated markdown store, tags, similarity and dependency graph."""

from .errors import CapsuleError, CapsuleNotFoundError, CapsuleParseError, CapsuleWriteError
from .graph import DependencyGraph, GraphResult
from .models import Capsule, CapsuleFilter, ChainResult, Challenge, generate_id
from .similarity import SimilarityEngine, SimilarityResult, merge_similarity_results
from .store import CapsuleStore
from .tags import TagClassifier, TagPrefix

__all__ = [
    "Capsule",
    "CapsuleFilter",
    "ChainResult",
    "Challenge",
    "generate_id",
    "CapsuleStore",
    "CapsuleError",
    "CapsuleNotFoundError",
    "CapsuleParseError",
    "CapsuleWriteError",
    "DependencyGraph",
    "GraphResult",
    "SimilarityEngine",
    "SimilarityResult",
    "merge_similarity_results",
    "TagClassifier",
    "TagPrefix",
]
