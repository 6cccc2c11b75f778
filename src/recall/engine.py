"""Multi-strategy recall over the capsule store.

Stateless per call: every query re-reads the store. Strategies (file, git,
tag, text, repo) run independently and merge into one ranking where each
capsule keeps its best tier.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

import structlog

from capsules.errors import CapsuleError
from capsules.models import Capsule, CapsuleFilter
from capsules.store import CapsuleStore
from capsules.tags import TagClassifier, TagPrefix, parse_tag

from .collaborators import RepoRegistry, SessionIndex, SessionSummary, git_log_commits

logger = structlog.get_logger()

DEFAULT_MAX_CAPSULES = 20
DEFAULT_RECENT_LIMIT = 15

GitLog = Callable[[Path, Sequence[str]], list[str]]


class MatchTier(IntEnum):
    """How a capsule was matched. Lower is more relevant."""

    EXACT_FILE = 0
    PARTIAL_FILE = 1
    GIT_CORRELATION = 2
    TAG = 3
    TEXT = 4
    REPO = 5

    @property
    def label(self) -> str:
        return {
            MatchTier.EXACT_FILE: "exact-file",
            MatchTier.PARTIAL_FILE: "partial-file",
            MatchTier.GIT_CORRELATION: "git",
            MatchTier.TAG: "tag",
            MatchTier.TEXT: "text",
            MatchTier.REPO: "repo",
        }[self]

    @property
    def is_strong(self) -> bool:
        return self <= MatchTier.GIT_CORRELATION


@dataclass
class RecallQuery:
    files: list[str] = field(default_factory=list)
    repo_id: str = ""
    repo_path: str = ""  # local checkout, needed for git correlation
    tags: list[str] = field(default_factory=list)
    query: str = ""  # substring search over question/choice/rationale
    max_capsules: int = 0  # 0 = engine default
    include_evolution: bool = False
    include_invalidated: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.files or self.tags or self.query or self.repo_id)


@dataclass
class ScoredCapsule:
    capsule: Capsule
    tier: MatchTier


@dataclass
class RecallResult:
    query: RecallQuery
    capsules: list[ScoredCapsule] = field(default_factory=list)
    sessions: list[SessionSummary] = field(default_factory=list)


def matches_file(tags: Iterable[str], file: str) -> bool:
    """Exact, parent-directory or child-path match between a file tag value and a path."""
    wanted = file.rstrip("/").lower()
    for tag in tags:
        prefix, value = parse_tag(tag)
        if prefix not in (None, TagPrefix.FILE):
            continue
        value = value.rstrip("/").lower()
        if not value:
            continue
        if value == wanted:
            return True
        # tag "src/auth" covers file "src/auth/login.ts"
        if wanted.startswith(value + "/"):
            return True
        # file "src/auth" covers tag "src/auth/login.ts"
        if value.startswith(wanted + "/"):
            return True
    return False


def matches_text(c: Capsule, query: str) -> bool:
    q = query.lower()
    return q in c.question.lower() or q in c.choice.lower() or q in c.rationale.lower()


class RecallEngine:
    def __init__(
        self,
        store: CapsuleStore,
        sessions: Optional[SessionIndex] = None,
        repos: Optional[RepoRegistry] = None,
        git_log: GitLog = git_log_commits,
        classifier: Optional[TagClassifier] = None,
        max_capsules: int = DEFAULT_MAX_CAPSULES,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
    ):
        self.store = store
        self.sessions = sessions
        self.repos = repos
        self.git_log = git_log
        self.classifier = classifier or store.classifier
        self.max_capsules = max_capsules
        self.recent_limit = recent_limit

    def _all(self, q: RecallQuery) -> list[Capsule]:
        return self.store.list_capsules(
            CapsuleFilter(show_evolution=q.include_evolution, include_invalidated=q.include_invalidated)
        )

    # --- Strategies ---

    def by_files(self, q: RecallQuery) -> list[Capsule]:
        return [
            c
            for c in self._all(q)
            if (not q.repo_id or q.repo_id in c.repos) and any(matches_file(c.tags, f) for f in q.files)
        ]

    def by_git_history(self, q: RecallQuery) -> list[Capsule]:
        repo_path = self._resolve_repo_path(q)
        if not repo_path or not q.files:
            return []
        commits = set(self.git_log(Path(repo_path), q.files))
        if not commits:
            return []
        return [
            c
            for c in self._all(q)
            if (not q.repo_id or q.repo_id in c.repos) and commits.intersection(c.commits)
        ]

    def by_tags(self, q: RecallQuery) -> list[Capsule]:
        return [
            c
            for c in self._all(q)
            if any(self.classifier.matches_tag_query_with_synonyms(c.tags, t) for t in q.tags)
        ]

    def by_text(self, q: RecallQuery) -> list[Capsule]:
        return [c for c in self._all(q) if matches_text(c, q.query)]

    def by_repo(self, q: RecallQuery) -> list[Capsule]:
        """Capsules of sessions touching the repo; every repo-tagged capsule without a session index."""
        repo_filter = CapsuleFilter(
            repo_id=q.repo_id,
            show_evolution=q.include_evolution,
            include_invalidated=q.include_invalidated,
        )
        if self.sessions is None:
            return self.store.list_capsules(repo_filter)
        session_ids = {s.id for s in self.repo_sessions(q.repo_id)}
        return [c for c in self.store.list_capsules(repo_filter) if c.session_id in session_ids]

    def repo_sessions(self, repo_id: str) -> list[SessionSummary]:
        """Every indexed session touching the repo, with or without capsules."""
        if self.sessions is None:
            return []
        return [s for s in self.sessions.list_sessions() if repo_id in s.repos]

    def by_recent(self, q: RecallQuery) -> RecallResult:
        limit = q.max_capsules or self.recent_limit
        recent = sorted(self._all(q), key=lambda c: c.recorded_at, reverse=True)[:limit]
        return RecallResult(
            query=q,
            capsules=[ScoredCapsule(c, MatchTier.REPO) for c in recent],
            sessions=self._sessions_for(recent),
        )

    # --- Planner ---

    def query(self, q: RecallQuery) -> RecallResult:
        """Run every applicable strategy and rank by (tier, newest first)."""
        if q.is_empty:
            return self.by_recent(q)

        plan: list[tuple[MatchTier, Callable[[RecallQuery], list[Capsule]]]] = []
        if q.files:
            plan.append((MatchTier.EXACT_FILE, self.by_files))
            plan.append((MatchTier.GIT_CORRELATION, self.by_git_history))
        if q.tags:
            plan.append((MatchTier.TAG, self.by_tags))
        if q.query:
            plan.append((MatchTier.TEXT, self.by_text))
        # Repo-wide recall only when nothing narrower was asked, to avoid noise
        if q.repo_id and not (q.files or q.tags or q.query):
            plan.append((MatchTier.REPO, self.by_repo))

        repo_wide = any(tier == MatchTier.REPO for tier, _ in plan)
        scored: dict[str, ScoredCapsule] = {}
        for tier, strategy in plan:
            try:
                matched = strategy(q)
            except (CapsuleError, OSError) as e:
                logger.warning("recall_strategy_failed", tier=tier.label, error=str(e))
                continue
            for c in matched:
                current = scored.get(c.id)
                if current is None or tier < current.tier:
                    scored[c.id] = ScoredCapsule(c, tier)

        ranked = sorted(scored.values(), key=lambda sc: sc.capsule.recorded_at, reverse=True)
        ranked.sort(key=lambda sc: sc.tier)
        ranked = ranked[: q.max_capsules or self.max_capsules]

        sessions = self._sessions_for([sc.capsule for sc in ranked])
        if repo_wide:
            sessions = self._with_repo_sessions(sessions, q.repo_id)
        return RecallResult(query=q, capsules=ranked, sessions=sessions)

    def _resolve_repo_path(self, q: RecallQuery) -> str:
        if q.repo_path:
            return q.repo_path
        if q.repo_id and self.repos is not None:
            try:
                return str(self.repos.local_path(q.repo_id))
            except CapsuleError as e:
                logger.debug("repo_path_unresolved", repo_id=q.repo_id, error=str(e))
        return ""

    def _with_repo_sessions(self, sessions: list[SessionSummary], repo_id: str) -> list[SessionSummary]:
        try:
            extra = self.repo_sessions(repo_id)
        except (CapsuleError, OSError) as e:
            logger.warning("repo_sessions_failed", repo_id=repo_id, error=str(e))
            return sessions
        known = {s.id for s in sessions}
        return sessions + [s for s in extra if s.id not in known]

    def _sessions_for(self, capsules: Iterable[Capsule]) -> list[SessionSummary]:
        if self.sessions is None:
            return []
        summaries = []
        for session_id in dict.fromkeys(c.session_id for c in capsules):
            try:
                summaries.append(self.sessions.get_session(session_id))
            except (CapsuleError, ValueError):
                continue
        return summaries
