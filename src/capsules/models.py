"""Data models for decision capsules."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from shared_types import CapsuleStatus, CapsuleType, Confirmation, Origin, Significance

# Canonical phase order. Index doubles as precedence rank for dedup.
DEFAULT_PHASE_ORDER: tuple[str, ...] = (
    "quickfix-seed",
    "ask",
    "investigate",
    "plan",
    "review",
    "execute",
    "verify",
    "simplify",
    "record",
)


def generate_id(session_id: str, phase: str, question: str) -> str:
    """Deterministic capsule ID: session, phase and the first 4 bytes of sha256(question)."""
    short_hash = hashlib.sha256(question.encode("utf-8")).hexdigest()[:8]
    return f"{session_id}-{phase}-{short_hash}"


def phase_rank(phase: str, phase_order: Sequence[str] = DEFAULT_PHASE_ORDER) -> int:
    """Position of phase in the pipeline. Unknown phases rank below every known one."""
    try:
        return list(phase_order).index(phase)
    except ValueError:
        return -1


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class Challenge:
    """One dispute or invalidation event recorded against a capsule."""

    timestamp: datetime
    reason: str
    learned: str = ""
    resolution: str = "pending"  # pending | verified | invalidated | superseded


@dataclass
class Capsule:
    id: str
    session_id: str
    phase: str
    question: str
    choice: str = ""
    rationale: str = ""
    alternatives: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    type: Optional[CapsuleType] = None
    status: CapsuleStatus = CapsuleStatus.ACTIVE
    significance: Significance = Significance.IMPLEMENTATION
    origin: Origin = Origin.AGENT
    confirmation: Confirmation = Confirmation.IMPLICIT
    pattern_id: str = ""
    repos: list[str] = field(default_factory=list)
    commits: list[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    invalidated_at: Optional[datetime] = None
    enabled_by: Optional[str] = None
    enables: list[str] = field(default_factory=list)
    constrains: list[str] = field(default_factory=list)
    supersedes: list[str] = field(default_factory=list)
    superseded_by: Optional[str] = None
    invalidation_reason: str = ""
    learned: str = ""
    challenges: list[Challenge] = field(default_factory=list)

    def __post_init__(self):
        if self.type is None:
            self.type = CapsuleType.DECISION if self.alternatives else CapsuleType.FINDING
        if not self.id:
            self.id = generate_id(self.session_id, self.phase, self.question)

    @classmethod
    def create(cls, session_id: str, phase: str, question: str, **kwargs) -> "Capsule":
        """Build a capsule whose ID is derived from (session, phase, question)."""
        return cls(
            id=generate_id(session_id, phase, question),
            session_id=session_id,
            phase=phase,
            question=question,
            **kwargs,
        )

    @property
    def is_active(self) -> bool:
        return self.status != CapsuleStatus.INVALIDATED

    @property
    def recorded_at(self) -> datetime:
        """Best available timestamp for recency ordering."""
        return self.timestamp or self.created_at or datetime.min.replace(tzinfo=timezone.utc)

    def validate(self) -> None:
        """Check record invariants.

        Raises:
            ValueError: If the question or session is empty, an invalidated capsule has no
                reason, or a finding carries alternatives.
        """
        if not self.session_id:
            raise ValueError(f"Capsule {self.id} has no session")
        if not self.question.strip():
            raise ValueError(f"Capsule {self.id} has an empty question")
        if self.status == CapsuleStatus.INVALIDATED and not self.invalidation_reason:
            raise ValueError(f"Invalidated capsule {self.id} must carry an invalidation reason")
        if self.alternatives and self.type != CapsuleType.DECISION:
            raise ValueError(f"Capsule {self.id} has alternatives but type is {self.type}")


@dataclass
class CapsuleFilter:
    """Query parameters for CapsuleStore.list. None fields do not constrain."""

    session_id: Optional[str] = None
    repo_id: Optional[str] = None
    phase: Optional[str] = None
    tag: Optional[str] = None
    file_path: Optional[str] = None
    status: Optional[CapsuleStatus] = None
    type: Optional[CapsuleType] = None
    significance: Optional[Significance] = None
    include_invalidated: bool = False
    show_evolution: bool = False

    def matches(self, c: Capsule) -> bool:
        if self.session_id is not None and c.session_id != self.session_id:
            return False
        if self.repo_id is not None and self.repo_id not in c.repos:
            return False
        if self.phase is not None and c.phase != self.phase:
            return False
        if self.status is not None and c.status != self.status:
            return False
        if self.type is not None and c.type != self.type:
            return False
        if self.significance is not None and c.significance != self.significance:
            return False
        if not self.include_invalidated and c.status == CapsuleStatus.INVALIDATED:
            return False
        if self.tag is not None:
            wanted = self.tag.lower()
            if not any(t.lower() == wanted for t in c.tags):
                return False
        if self.file_path is not None:
            if not any(self.file_path in t for t in c.tags):
                return False
        return True


@dataclass
class ChainResult:
    """Supersession neighbourhood of one capsule."""

    current: Capsule
    supersedes: list[Capsule] = field(default_factory=list)  # older
    superseded_by: Optional[Capsule] = None  # newer
