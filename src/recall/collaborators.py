"""Session listing, repo registry and git log lookups consumed by recall."""

import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

import frontmatter
import structlog
import yaml

from capsules.errors import CapsuleNotFoundError

logger = structlog.get_logger()

GIT_LOG_LIMIT = 50


@dataclass
class SessionSummary:
    id: str
    description: str = ""
    status: str = ""
    created_at: Optional[datetime] = None
    repos: list[str] = field(default_factory=list)


class SessionIndex(Protocol):
    def list_sessions(self) -> list[SessionSummary]: ...

    def get_session(self, session_id: str) -> SessionSummary: ...


class RepoRegistry(Protocol):
    def local_path(self, repo_id: str) -> Path: ...


class FileSessionIndex:
    """Reads ``<home>/sessions/<id>/session.yaml``."""

    def __init__(self, home: str | Path):
        self.sessions_dir = Path(home).expanduser() / "sessions"

    def get_session(self, session_id: str) -> SessionSummary:
        path = self.sessions_dir / session_id / "session.yaml"
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise CapsuleNotFoundError(f"Session not found: {session_id}") from None
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid session file for {session_id}: {e}") from e

        created = data.get("created_at")
        if isinstance(created, str):
            try:
                created = datetime.fromisoformat(created)
            except ValueError:
                created = None
        return SessionSummary(
            id=str(data.get("id") or session_id),
            description=data.get("description", ""),
            status=data.get("status", ""),
            created_at=created if isinstance(created, datetime) else None,
            repos=list(data.get("repos") or []),
        )

    def list_sessions(self) -> list[SessionSummary]:
        if not self.sessions_dir.is_dir():
            return []
        sessions = []
        for d in sorted(self.sessions_dir.iterdir()):
            if not d.is_dir():
                continue
            try:
                sessions.append(self.get_session(d.name))
            except (CapsuleNotFoundError, ValueError):
                continue
        return sessions


class FileRepoRegistry:
    """Reads ``<home>/repos/REPO_*.md`` files with YAML front matter."""

    def __init__(self, home: str | Path):
        self.repos_dir = Path(home).expanduser() / "repos"

    def local_path(self, repo_id: str) -> Path:
        if self.repos_dir.is_dir():
            for f in sorted(self.repos_dir.glob("REPO_*.md")):
                try:
                    post = frontmatter.load(f)
                except (OSError, ValueError, yaml.YAMLError):
                    continue
                if post.get("id") == repo_id and post.get("local_path"):
                    return Path(post["local_path"]).expanduser()
        raise CapsuleNotFoundError(f"Repo not found: {repo_id}")


def git_log_commits(repo_path: str | Path, files: Sequence[str], limit: int = GIT_LOG_LIMIT) -> list[str]:
    """Recent commit SHAs touching files. Synchronous, no timeout; [] on git failure."""
    args = ["git", "-C", str(repo_path), "log", "--format=%H", f"-{limit}", "--", *files]
    try:
        out = subprocess.run(args, capture_output=True, text=True, check=True).stdout
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("git_log_failed", repo_path=str(repo_path), error=str(e))
        return []
    return [line.strip() for line in out.splitlines() if line.strip()]
