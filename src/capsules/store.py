"""File-backed capsule store: one consolidated markdown file per session."""

from pathlib import Path
from typing import Optional, Sequence

import structlog

from shared_types import CapsuleStatus

from .codec import decode_session, encode_session
from .errors import CapsuleError, CapsuleNotFoundError, CapsuleParseError, CapsuleWriteError
from .models import (
    DEFAULT_PHASE_ORDER,
    Capsule,
    CapsuleFilter,
    ChainResult,
    Challenge,
    phase_rank,
    utc_now,
)
from .tags import TagClassifier, default_classifier

logger = structlog.get_logger()

CAPSULES_FILENAME = "capsules.md"
LEDGER_FILENAME = "milestone_ledger.md"


def _unique(items: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(items))


class CapsuleStore:
    """Reads and rewrites consolidated session files under ``<home>/sessions``.

    Every mutation is read-whole-file, mutate, write-whole-file. There is no
    locking: concurrent writers to the same session file lose updates.
    """

    def __init__(
        self,
        home: str | Path,
        classifier: Optional[TagClassifier] = None,
        phase_order: Sequence[str] = DEFAULT_PHASE_ORDER,
    ):
        self.home = Path(home).expanduser()
        self.classifier = classifier or default_classifier
        self.phase_order = tuple(phase_order)

    @property
    def sessions_dir(self) -> Path:
        return self.home / "sessions"

    def session_file(self, session_id: str) -> Path:
        return self.sessions_dir / session_id / CAPSULES_FILENAME

    def session_ids(self) -> list[str]:
        if not self.sessions_dir.is_dir():
            return []
        return sorted(p.name for p in self.sessions_dir.iterdir() if p.is_dir())

    # --- Session file I/O ---

    def load_session(self, session_id: str) -> list[Capsule]:
        """Parse one session's capsules.

        Raises:
            CapsuleNotFoundError: If the session has no capsules file.
            CapsuleParseError: If the file's front matter is malformed.
        """
        path = self.session_file(session_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CapsuleNotFoundError(f"No capsules found for session {session_id}") from None
        # Directory name fills in when front matter omits the session
        return decode_session(text, source=str(path), default_session=session_id)

    def write_session(self, session_id: str, capsules: Sequence[Capsule]) -> Path:
        """Rewrite a session's consolidated file.

        Raises:
            CapsuleWriteError: If the directory or file cannot be written.
        """
        path = self.session_file(session_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CapsuleWriteError(f"Failed to create session directory {path.parent}: {e}") from e
        try:
            path.write_text(encode_session(session_id, capsules, self.phase_order), encoding="utf-8")
        except OSError as e:
            raise CapsuleWriteError(f"Failed to write {path}: {e}") from e
        return path

    def _load_session_or_empty(self, session_id: str) -> list[Capsule]:
        try:
            return self.load_session(session_id)
        except CapsuleNotFoundError:
            return []

    def _scan(self) -> list[Capsule]:
        """Load every session; unparseable sessions are logged and skipped."""
        capsules: list[Capsule] = []
        for session_id in self.session_ids():
            try:
                capsules.extend(self.load_session(session_id))
            except CapsuleNotFoundError:
                continue
            except (CapsuleParseError, OSError) as e:
                logger.warning("capsule_file_unparseable", session_id=session_id, error=str(e))
        self._derive_enables(capsules)
        return capsules

    @staticmethod
    def _derive_enables(capsules: Sequence[Capsule]) -> None:
        """Fill ``enables`` as the inverse of ``enabled_by`` across the given capsules."""
        enabled: dict[str, list[str]] = {}
        for c in capsules:
            if c.enabled_by:
                enabled.setdefault(c.enabled_by, []).append(c.id)
        for c in capsules:
            if c.id in enabled:
                c.enables = _unique([*c.enables, *enabled[c.id]])

    def _upsert(self, capsule: Capsule) -> None:
        existing = self._load_session_or_empty(capsule.session_id)
        for i, c in enumerate(existing):
            if c.id == capsule.id:
                existing[i] = capsule
                break
        else:
            existing.append(capsule)
        self.write_session(capsule.session_id, existing)

    # --- Public operations ---

    def store(self, capsule: Capsule) -> Capsule:
        """Insert or fully replace a capsule by ID, rewriting its session file.

        Raises:
            ValueError: If the capsule violates a record invariant.
            CapsuleParseError: If the existing session file cannot be parsed.
            CapsuleWriteError: On filesystem failure.
        """
        capsule.validate()
        capsule.tags = _unique(self.classifier.normalize_tags(capsule.tags))
        self._upsert(capsule)
        logger.debug("capsule_stored", capsule_id=capsule.id, session_id=capsule.session_id)
        self._backlink_superseded(capsule)
        if capsule.superseded_by:
            self._backlink_superseder(capsule.id, capsule.superseded_by)
        return capsule

    def _backlink_superseded(self, capsule: Capsule) -> None:
        """Point each superseded capsule back at its replacement. Single attempt, best effort."""
        for old_id in capsule.supersedes:
            try:
                old = self.get(old_id)
                if old.superseded_by == capsule.id:
                    continue
                if old.superseded_by:
                    logger.warning(
                        "supersession_conflict",
                        capsule_id=old_id,
                        existing=old.superseded_by,
                        replacement=capsule.id,
                    )
                    continue
                old.superseded_by = capsule.id
                self._upsert(old)
            except (CapsuleError, OSError) as e:
                logger.warning("backlink_failed", capsule_id=old_id, superseded_by=capsule.id, error=str(e))

    def _backlink_superseder(self, capsule_id: str, superseded_by: str) -> None:
        """Add capsule_id to the replacement's supersedes list. Single attempt, best effort."""
        try:
            newer = self.get(superseded_by)
            if capsule_id not in newer.supersedes:
                newer.supersedes.append(capsule_id)
                self._upsert(newer)
        except (CapsuleError, OSError) as e:
            logger.warning("backlink_failed", capsule_id=superseded_by, supersedes=capsule_id, error=str(e))

    def get(self, capsule_id: str) -> Capsule:
        """Find a capsule by ID across all sessions.

        Raises:
            CapsuleNotFoundError: If no session contains the ID.
        """
        for c in self._scan():
            if c.id == capsule_id:
                return c
        raise CapsuleNotFoundError(f"Capsule not found: {capsule_id}")

    def list_capsules(self, capsule_filter: Optional[CapsuleFilter] = None) -> list[Capsule]:
        """Capsules matching the filter, collapsed to the latest phase per question by default."""
        f = capsule_filter or CapsuleFilter()
        result = [c for c in self._scan() if f.matches(c)]
        if not f.show_evolution:
            result = self.deduplicate_to_latest_phase(result)
        return result

    def deduplicate_to_latest_phase(self, capsules: Sequence[Capsule]) -> list[Capsule]:
        """Keep the highest-ranked phase per (session, question)."""
        best: dict[tuple[str, str], Capsule] = {}
        for c in capsules:
            key = (c.session_id, c.question)
            current = best.get(key)
            if current is None or phase_rank(c.phase, self.phase_order) > phase_rank(
                current.phase, self.phase_order
            ):
                best[key] = c
        return list(best.values())

    def list_tags(self) -> list[str]:
        tags = {t for c in self.list_capsules(CapsuleFilter(show_evolution=True)) for t in c.tags}
        return sorted(tags)

    def invalidate(
        self,
        capsule_id: str,
        reason: str,
        learned: str = "",
        superseded_by: Optional[str] = None,
    ) -> Capsule:
        """Mark a capsule invalidated and record a challenge.

        Linking the superseding capsule's ``supersedes`` list is a single best-effort
        attempt; if it fails the relationship is left one-directional.

        Raises:
            ValueError: If reason is empty.
            CapsuleNotFoundError: If the capsule does not exist.
        """
        if not reason.strip():
            raise ValueError(f"Invalidating {capsule_id} requires a reason")

        c = self.get(capsule_id)
        now = utc_now()
        c.status = CapsuleStatus.INVALIDATED
        c.invalidated_at = now
        c.invalidation_reason = reason
        c.learned = learned

        if superseded_by:
            c.superseded_by = superseded_by
            if self.would_create_supersession_cycle(superseded_by, [capsule_id]):
                logger.warning("supersession_cycle", capsule_id=capsule_id, superseded_by=superseded_by)
            self._backlink_superseder(capsule_id, superseded_by)

        c.challenges.append(
            Challenge(timestamp=now, reason=reason, learned=learned, resolution="invalidated")
        )
        self._upsert(c)
        logger.info("capsule_invalidated", capsule_id=capsule_id, superseded_by=superseded_by)
        return c

    def add_challenge(self, capsule_id: str, challenge: Challenge) -> Capsule:
        """Append a challenge without changing status."""
        c = self.get(capsule_id)
        c.challenges.append(challenge)
        self._upsert(c)
        return c

    def get_chain(self, capsule_id: str) -> ChainResult:
        """Resolve a capsule's immediate supersession neighbours. Missing links are skipped."""
        c = self.get(capsule_id)
        result = ChainResult(current=c)
        if c.superseded_by:
            try:
                result.superseded_by = self.get(c.superseded_by)
            except CapsuleNotFoundError:
                logger.debug("chain_link_missing", capsule_id=c.superseded_by)
        for old_id in c.supersedes:
            try:
                result.supersedes.append(self.get(old_id))
            except CapsuleNotFoundError:
                logger.debug("chain_link_missing", capsule_id=old_id)
        return result

    def would_create_supersession_cycle(self, capsule_id: str, supersedes: Sequence[str]) -> bool:
        """True if capsule_id is reachable from any of supersedes via existing supersedes links."""
        index = {c.id: c for c in self._scan()}
        stack = list(supersedes)
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == capsule_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            node = index.get(current)
            if node is not None:
                stack.extend(node.supersedes)
        return False

    def link_commits(self, capsule_id: str, commits: Sequence[str]) -> Capsule:
        c = self.get(capsule_id)
        c.commits = list(commits)
        self._upsert(c)
        return c

    def link_commits_for_session(self, session_id: str, commits: Sequence[str]) -> int:
        """Set commits on every capsule of a session. Returns the number updated.

        Raises:
            CapsuleNotFoundError: If the session has no capsules file.
        """
        capsules = self.load_session(session_id)
        if not capsules:
            return 0
        for c in capsules:
            c.commits = list(commits)
        self.write_session(session_id, capsules)
        return len(capsules)

    def enrich_tags_from_manifest(self, session_id: str) -> int:
        """Add file: tags from the session ledger's File Manifest to every capsule.

        Returns the number of capsules that gained a tag. A missing ledger or
        capsules file is not an error.
        """
        ledger = self.sessions_dir / session_id / LEDGER_FILENAME
        try:
            paths = extract_manifest_paths(ledger.read_text(encoding="utf-8"))
        except OSError:
            return 0
        if not paths:
            return 0

        try:
            capsules = self.load_session(session_id)
        except (CapsuleError, OSError) as e:
            logger.warning("tag_enrichment_skipped", session_id=session_id, error=str(e))
            return 0

        updated = 0
        for c in capsules:
            new_tags = [t for t in (self.classifier.normalize_tag(p) for p in paths) if t not in c.tags]
            if new_tags:
                c.tags = _unique([*c.tags, *new_tags])
                updated += 1

        if updated:
            self.write_session(session_id, capsules)
            logger.info("tags_enriched", session_id=session_id, capsules=updated)
        return updated


def extract_manifest_paths(content: str) -> list[str]:
    """File paths listed under a '## ... File ... Manifest' heading."""
    paths = []
    in_manifest = False
    for line in content.splitlines():
        stripped = line.strip()
        lower = stripped.lower()
        if stripped.startswith("## "):
            if in_manifest:
                break
            if "file" in lower and "manifest" in lower:
                in_manifest = True
            continue
        if not in_manifest or not stripped.startswith(("- ", "* ")):
            continue

        entry = stripped[2:].strip("`")
        # Drop annotations like "path: description" or "path (new)"
        if ":" in entry[1:]:
            entry = entry[: entry.index(":", 1)].strip()
        if " " in entry[1:]:
            entry = entry[: entry.index(" ", 1)].strip()
        entry = entry.strip("`")
        if entry and ("/" in entry or "." in entry):
            paths.append(entry)
    return paths
