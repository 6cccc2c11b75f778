"""Lexical duplicate and contradiction detection for proposed capsules.

Pairwise and O(n) over the candidate set; candidate sets are session- or
corpus-scoped and small, so nothing is indexed.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, Optional

from shared_types import CapsuleStatus

from .models import Capsule

ACTION_CREATE = "create"
ACTION_DUPLICATE = "duplicate_of:"
ACTION_SUPERSEDES = "supersedes:"

DEFAULT_STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "from", "as", "is", "was", "are", "were", "be", "been", "being", "have", "has", "had",
        "do", "does", "did", "will", "would", "could", "should", "may", "might", "this", "that",
        "these", "those", "i", "we", "you", "he", "she", "it", "they", "what", "which", "who",
        "when", "where", "why", "how", "use", "using", "used",
    }
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class SimilarityThresholds:
    duplicate: float = 0.6
    high_confidence: float = 0.8
    contradiction_question: float = 0.5
    contradiction_choice: float = 0.4


@dataclass
class SimilarMatch:
    capsule_id: str
    question: str
    choice: str
    phase: str
    similarity_reason: str
    confidence: str  # high | medium | low


@dataclass
class Contradiction:
    capsule_id: str
    question: str
    choice: str
    session_id: str
    reason: str


@dataclass
class SimilarityResult:
    similar: list[SimilarMatch] = field(default_factory=list)
    contradicts: list[Contradiction] = field(default_factory=list)
    suggested_action: str = ACTION_CREATE  # create | supersedes:<id> | duplicate_of:<id>

    def to_dict(self) -> dict:
        return {
            "similar": [vars(m) for m in self.similar],
            "contradicts": [vars(c) for c in self.contradicts],
            "suggested_action": self.suggested_action,
        }


def normalize_text(text: str) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace."""
    chars = (" " if unicodedata.category(ch).startswith("P") else ch for ch in text.lower())
    return " ".join("".join(chars).split())


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """|A∩B| / |A∪B|; 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class SimilarityEngine:
    def __init__(
        self,
        stop_words: Iterable[str] = DEFAULT_STOP_WORDS,
        thresholds: SimilarityThresholds = SimilarityThresholds(),
    ):
        self.stop_words = frozenset(stop_words)
        self.thresholds = thresholds

    def extract_keywords(self, text: str) -> set[str]:
        """Lowercased alphanumeric tokens longer than two characters, minus stop words."""
        return {
            w for w in _NON_ALNUM.split(text.lower()) if len(w) > 2 and w not in self.stop_words
        }

    def fast_similarity_check(
        self, existing: Iterable[Capsule], proposed: Capsule
    ) -> Optional[SimilarityResult]:
        """Flag active capsules whose question duplicates or closely overlaps the proposal.

        Returns None when nothing crosses the threshold.
        """
        result = SimilarityResult()
        normalized = normalize_text(proposed.question)
        keywords = self.extract_keywords(proposed.question)

        for c in existing:
            if c.status == CapsuleStatus.INVALIDATED:
                continue

            if normalize_text(c.question) == normalized:
                result.similar.append(
                    SimilarMatch(
                        capsule_id=c.id,
                        question=c.question,
                        choice=c.choice,
                        phase=c.phase,
                        similarity_reason="Exact match on normalized question text",
                        confidence="high",
                    )
                )
                result.suggested_action = ACTION_DUPLICATE + c.id
                continue

            score = jaccard_similarity(keywords, self.extract_keywords(c.question))
            if score >= self.thresholds.duplicate:
                confidence = "high" if score >= self.thresholds.high_confidence else "medium"
                result.similar.append(
                    SimilarMatch(
                        capsule_id=c.id,
                        question=c.question,
                        choice=c.choice,
                        phase=c.phase,
                        similarity_reason="High keyword overlap in question text",
                        confidence=confidence,
                    )
                )
                if result.suggested_action == ACTION_CREATE and confidence == "high":
                    result.suggested_action = ACTION_DUPLICATE + c.id

        return result if result.similar else None

    def fast_contradiction_check(
        self, all_active: Iterable[Capsule], proposed: Capsule
    ) -> Optional[SimilarityResult]:
        """Flag capsules answering a similar question with a different choice."""
        result = SimilarityResult()
        question_kw = self.extract_keywords(proposed.question)
        choice_kw = self.extract_keywords(proposed.choice)

        for c in all_active:
            if c.status == CapsuleStatus.INVALIDATED:
                continue
            if jaccard_similarity(question_kw, self.extract_keywords(c.question)) < self.thresholds.contradiction_question:
                continue
            if jaccard_similarity(choice_kw, self.extract_keywords(c.choice)) < self.thresholds.contradiction_choice:
                result.contradicts.append(
                    Contradiction(
                        capsule_id=c.id,
                        question=c.question,
                        choice=c.choice,
                        session_id=c.session_id,
                        reason="Similar question with significantly different choice",
                    )
                )
                result.suggested_action = ACTION_SUPERSEDES + c.id

        return result if result.contradicts else None

    def check(self, candidates: Iterable[Capsule], proposed: Capsule) -> Optional[SimilarityResult]:
        """Run both checks against the same candidates and merge."""
        candidates = [c for c in candidates if c.id != proposed.id]
        return merge_similarity_results(
            self.fast_similarity_check(candidates, proposed),
            self.fast_contradiction_check(candidates, proposed),
        )


def merge_similarity_results(
    a: Optional[SimilarityResult], b: Optional[SimilarityResult]
) -> Optional[SimilarityResult]:
    """Concatenate findings. Action precedence: supersedes > duplicate > create."""
    if a is None:
        return b
    if b is None:
        return a

    action = a.suggested_action
    if b.suggested_action.startswith(ACTION_SUPERSEDES):
        action = b.suggested_action
    elif b.suggested_action.startswith(ACTION_DUPLICATE) and not action.startswith(ACTION_SUPERSEDES):
        action = b.suggested_action

    return SimilarityResult(
        similar=[*a.similar, *b.similar],
        contradicts=[*a.contradicts, *b.contradicts],
        suggested_action=action,
    )


default_engine = SimilarityEngine()


def extract_keywords(text: str) -> set[str]:
    return default_engine.extract_keywords(text)


def fast_similarity_check(existing: Iterable[Capsule], proposed: Capsule) -> Optional[SimilarityResult]:
    return default_engine.fast_similarity_check(existing, proposed)


def fast_contradiction_check(all_active: Iterable[Capsule], proposed: Capsule) -> Optional[SimilarityResult]:
    return default_engine.fast_contradiction_check(all_active, proposed)
