"""Detect when free text signals that a prior decision should be revisited."""

import re
from dataclasses import dataclass
from typing import Optional

INVALIDATE_AND_SUPERSEDE = "invalidate_and_supersede"
CHALLENGE_OR_INVALIDATE = "challenge_or_invalidate"
REVIEW_AND_DISCUSS = "review_and_discuss"

# Ordered: first match wins, so stronger signals come first.
_PATTERNS: tuple[tuple[re.Pattern, str, str], ...] = tuple(
    (re.compile(p, re.IGNORECASE), confidence, action)
    for p, confidence, action in (
        (r"\b(this|that|the previous|earlier|old)\s+(decision|approach|choice|implementation)\s+(was|is)\s+(wrong|incorrect|bad|flawed|mistaken)", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\bwrong\s+(about|decision|approach|choice)\b", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\b(should\s+not\s+have|shouldn't\s+have)\s+(used|chosen|implemented|picked)", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\b(invalidate|supersede|replace|overturn)\s+(this|that|the)\s+(decision|choice)", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\bthat\s+was\s+a\s+mistake\b", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\b(turns\s+out|it\s+turns\s+out)\s+.*\s+(was|is)\s+(wrong|incorrect|bad)", "high", INVALIDATE_AND_SUPERSEDE),
        (r"\b(revert|undo|rollback|go\s+back\s+to|switch\s+back)\b", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\bactually.*\bshould\s+(use|implement|choose)", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\binstead.*\bshould\s+(use|implement|choose)", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\bchanging\s+(my|our)\s+mind\b", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\b(reconsider|rethink|revisit)\s+(this|that|the)\s+(decision|approach|choice)", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\b(didn't|did\s+not)\s+work\s+(out|well|as\s+expected)", "medium", CHALLENGE_OR_INVALIDATE),
        (r"\bwhy\s+did\s+we\s+(choose|pick|select|use)", "low", REVIEW_AND_DISCUSS),
        (r"\b(not\s+sure|unsure|uncertain)\s+(about|if)\s+(this|that|the)\s+(decision|approach|choice)", "low", REVIEW_AND_DISCUSS),
        (r"\b(better|alternative|different)\s+(approach|option|way)", "low", REVIEW_AND_DISCUSS),
    )
)

_CONFIDENCE_LEVELS = {"high": 90, "medium": 60, "low": 30}

_ACTION_DESCRIPTIONS = {
    INVALIDATE_AND_SUPERSEDE: "Invalidate the prior decision and create a new superseding capsule",
    CHALLENGE_OR_INVALIDATE: "Either add a challenge record or invalidate the decision",
    REVIEW_AND_DISCUSS: "Review the decision context before taking action",
}

_CAPSULE_ID = re.compile(r"\b(\d{8}-[a-z0-9-]+-[a-f0-9]{8})\b")
_DECISION_REF = re.compile(r"\b(?:decision|capsule)\s+([a-zA-Z][a-zA-Z0-9-]*[a-zA-Z0-9])", re.IGNORECASE)


@dataclass
class InvalidationIntent:
    detected: bool
    confidence: str = ""  # high | medium | low
    matched_pattern: str = ""
    suggested_action: str = ""
    capsule_id: Optional[str] = None

    def confidence_level(self) -> int:
        return _CONFIDENCE_LEVELS.get(self.confidence, 0)

    def action_description(self) -> str:
        return _ACTION_DESCRIPTIONS.get(self.suggested_action, "No action suggested")

    def prompt(self) -> str:
        """Question to put to the user, or '' when nothing was detected."""
        if not self.detected:
            return ""
        if self.confidence == "high":
            if self.capsule_id:
                return f"It sounds like you want to invalidate decision {self.capsule_id}. Mark as invalidated? [Y/n]"
            return "It sounds like you want to invalidate a prior decision. Which decision should be marked as invalidated?"
        if self.confidence == "medium":
            if self.capsule_id:
                return (
                    f"This might invalidate decision {self.capsule_id}. Would you like to: "
                    "(1) Invalidate and supersede, (2) Add a challenge note, or (3) Continue without action?"
                )
            return "This might affect a prior decision. Would you like to note this as a challenge to the original decision?"
        if self.confidence == "low":
            return (
                "Note: This discussion references prior decisions. If you're reconsidering a choice, "
                "consider using 'card capsule invalidate <id>' to maintain decision history."
            )
        return ""


def detect_invalidation_intent(text: str, capsule_id: Optional[str] = None) -> InvalidationIntent:
    for pattern, confidence, action in _PATTERNS:
        if pattern.search(text):
            return InvalidationIntent(
                detected=True,
                confidence=confidence,
                matched_pattern=pattern.pattern,
                suggested_action=action,
                capsule_id=capsule_id or None,
            )
    return InvalidationIntent(detected=False)


def extract_capsule_references(text: str) -> list[str]:
    """Capsule IDs and 'decision <name>' references, deduplicated in order."""
    refs = _CAPSULE_ID.findall(text)
    refs.extend(_DECISION_REF.findall(text))
    return list(dict.fromkeys(refs))
