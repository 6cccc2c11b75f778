"""Shared CLI utilities."""

from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()


def get_components(home: Optional[Path] = None) -> dict:
    """Build store, graph, similarity and recall components from config."""
    from capsules import CapsuleStore, DependencyGraph, SimilarityEngine
    from capsules.similarity import SimilarityThresholds
    from cli.config import load_config_model
    from recall import FileRepoRegistry, FileSessionIndex, RecallEngine

    config = load_config_model()
    home = Path(home).expanduser() if home else config.paths.home

    store = CapsuleStore(home)
    sim = config.similarity
    similarity = SimilarityEngine(
        thresholds=SimilarityThresholds(
            duplicate=sim.duplicate_threshold,
            high_confidence=sim.high_confidence,
            contradiction_question=sim.contradiction_question,
            contradiction_choice=sim.contradiction_choice,
        )
    )
    recall = RecallEngine(
        store,
        sessions=FileSessionIndex(home),
        repos=FileRepoRegistry(home),
        max_capsules=config.recall.max_capsules,
        recent_limit=config.recall.recent_limit,
    )

    logger.debug("components_built", home=str(home))
    return {
        "config": config,
        "home": home,
        "store": store,
        "graph": DependencyGraph(store, default_depth=config.graph.default_depth),
        "similarity": similarity,
        "recall": recall,
    }
