from .collaborators import FileRepoRegistry, FileSessionIndex, SessionSummary, git_log_commits
from .engine import MatchTier, RecallEngine, RecallQuery, RecallResult, ScoredCapsule
from .formatting import format_context, format_terminal

__all__ = [
    "RecallEngine",
    "RecallQuery",
    "RecallResult",
    "ScoredCapsule",
    "MatchTier",
    "format_context",
    "format_terminal",
    "FileSessionIndex",
    "FileRepoRegistry",
    "SessionSummary",
    "git_log_commits",
]
