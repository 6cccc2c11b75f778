"""Tests for the multi-strategy recall engine."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from capsules.errors import CapsuleNotFoundError
from capsules.models import Capsule
from recall.collaborators import FileRepoRegistry, FileSessionIndex, git_log_commits
from recall.engine import MatchTier, RecallEngine, RecallQuery, matches_file

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _capsule(session, question, days=0, **kwargs):
    kwargs.setdefault("choice", "x")
    kwargs.setdefault("rationale", "y")
    return Capsule.create(session, "plan", question, timestamp=BASE + timedelta(days=days), **kwargs)


def _no_git(repo_path, files):
    return []


@pytest.fixture
def engine(store):
    return RecallEngine(store, git_log=_no_git)


class TestMatchesFile:
    def test_exact(self):
        assert matches_file(["file:src/auth/login.ts"], "src/auth/login.ts")

    def test_case_insensitive(self):
        assert matches_file(["file:SRC/Auth/Login.ts"], "src/auth/login.ts")

    def test_directory_tag_covers_file(self):
        assert matches_file(["file:src/auth"], "src/auth/login.ts")

    def test_file_under_requested_directory(self):
        assert matches_file(["file:src/auth/login.ts"], "src/auth/")

    def test_sibling_prefix_does_not_match(self):
        assert not matches_file(["file:src/authz/policy.ts"], "src/auth")

    def test_other_prefixes_ignored(self):
        assert not matches_file(["concept:src/auth/login.ts"], "src/auth/login.ts")

    def test_unprefixed_tag(self):
        assert matches_file(["src/auth/login.ts"], "src/auth/login.ts")


class TestQuery:
    def test_file_match_outranks_text(self, store, engine):
        text_hit = store.store(_capsule("s1", "How does the login redirect work?", days=5))
        file_hit = store.store(_capsule("s2", "Token format?", days=1, tags=["file:src/auth/login.ts"]))
        result = engine.query(RecallQuery(files=["src/auth/login.ts"], query="login"))
        assert [sc.capsule.id for sc in result.capsules] == [file_hit.id, text_hit.id]
        assert [sc.tier for sc in result.capsules] == [MatchTier.EXACT_FILE, MatchTier.TEXT]

    def test_best_tier_kept(self, store, engine):
        c = store.store(_capsule("s1", "Login throttling?", tags=["file:src/auth/login.ts", "concept:auth"]))
        result = engine.query(RecallQuery(files=["src/auth/login.ts"], tags=["auth"], query="login"))
        assert len(result.capsules) == 1
        assert result.capsules[0].capsule.id == c.id
        assert result.capsules[0].tier == MatchTier.EXACT_FILE

    def test_recency_within_tier(self, store, engine):
        old = store.store(_capsule("s1", "Old cache decision?", days=1, tags=["concept:cache"]))
        new = store.store(_capsule("s2", "New cache decision?", days=9, tags=["concept:cache"]))
        result = engine.query(RecallQuery(tags=["cache"]))
        assert [sc.capsule.id for sc in result.capsules] == [new.id, old.id]

    def test_synonym_tag_match(self, store, engine):
        c = store.store(_capsule("s1", "Signing keys?", tags=["concept:jwt"]))
        result = engine.query(RecallQuery(tags=["auth"]))
        assert [sc.capsule.id for sc in result.capsules] == [c.id]
        assert result.capsules[0].tier == MatchTier.TAG

    def test_text_is_case_insensitive(self, store, engine):
        c = store.store(_capsule("s1", "Queue choice?", rationale="RabbitMQ has dead letters"))
        result = engine.query(RecallQuery(query="rabbitmq"))
        assert [sc.capsule.id for sc in result.capsules] == [c.id]

    def test_file_strategy_respects_repo(self, store, engine):
        store.store(_capsule("s1", "A?", tags=["file:src/app.py"], repos=["REPO-a"]))
        b = store.store(_capsule("s2", "B?", tags=["file:src/app.py"], repos=["REPO-b"]))
        result = engine.query(RecallQuery(files=["src/app.py"], repo_id="REPO-b"))
        assert [sc.capsule.id for sc in result.capsules] == [b.id]

    def test_repo_only_query(self, store, engine):
        a = store.store(_capsule("s1", "A?", repos=["REPO-a"]))
        store.store(_capsule("s2", "B?", repos=["REPO-b"]))
        result = engine.query(RecallQuery(repo_id="REPO-a"))
        assert [sc.capsule.id for sc in result.capsules] == [a.id]
        assert result.capsules[0].tier == MatchTier.REPO

    def test_repo_query_uses_session_index(self, store, card_home):
        store.store(_capsule("s1", "A?", repos=["REPO-a"]))
        store.store(_capsule("s2", "B?", repos=["REPO-a"]))
        (card_home / "sessions" / "s2" / "session.yaml").write_text(
            yaml.safe_dump({"id": "s2", "description": "Queue work", "repos": ["REPO-a"]})
        )
        engine = RecallEngine(store, sessions=FileSessionIndex(card_home), git_log=_no_git)
        result = engine.query(RecallQuery(repo_id="REPO-a"))
        assert [sc.capsule.session_id for sc in result.capsules] == ["s2"]
        assert [s.description for s in result.sessions] == ["Queue work"]

    def test_repo_query_reports_sessions_without_capsules(self, store, card_home):
        store.store(_capsule("s1", "A?", repos=["REPO-a"]))
        (card_home / "sessions" / "s1" / "session.yaml").write_text(
            yaml.safe_dump({"id": "s1", "description": "Auth work", "repos": ["REPO-a"]})
        )
        spike = card_home / "sessions" / "s3"
        spike.mkdir()
        (spike / "session.yaml").write_text(
            yaml.safe_dump({"id": "s3", "description": "Spike, no decisions", "repos": ["REPO-a"]})
        )
        engine = RecallEngine(store, sessions=FileSessionIndex(card_home), git_log=_no_git)
        result = engine.query(RecallQuery(repo_id="REPO-a"))
        assert [sc.capsule.session_id for sc in result.capsules] == ["s1"]
        assert [s.id for s in result.sessions] == ["s1", "s3"]

    def test_max_capsules(self, store, engine):
        for i in range(5):
            store.store(_capsule("s1", f"Cache question {i}?", days=i, tags=["concept:cache"]))
        result = engine.query(RecallQuery(tags=["cache"], max_capsules=3))
        assert len(result.capsules) == 3
        assert result.capsules[0].capsule.question == "Cache question 4?"

    def test_invalidated_excluded_unless_requested(self, store, engine):
        c = store.store(_capsule("s1", "Old ORM?", tags=["concept:orm"]))
        store.invalidate(c.id, "Replaced")
        assert engine.query(RecallQuery(tags=["orm"])).capsules == []
        assert len(engine.query(RecallQuery(tags=["orm"], include_invalidated=True)).capsules) == 1


class TestRecent:
    def test_empty_query_returns_recent(self, store):
        for i in range(4):
            store.store(_capsule("s1", f"Question {i}?", days=i))
        engine = RecallEngine(store, git_log=_no_git, recent_limit=2)
        result = engine.query(RecallQuery())
        assert [sc.capsule.question for sc in result.capsules] == ["Question 3?", "Question 2?"]

    def test_empty_store(self, engine):
        assert engine.query(RecallQuery()).capsules == []


class TestGitCorrelation:
    def test_commit_intersection(self, store):
        c = store.store(_capsule("s1", "Retry budget?", commits=["abc123"]))
        store.store(_capsule("s1", "Unrelated?", commits=["fff000"]))
        fake_git = MagicMock(return_value=["abc123", "bbb222"])

        engine = RecallEngine(store, git_log=fake_git)
        result = engine.query(RecallQuery(files=["src/retry.py"], repo_path="/work/api"))
        assert [sc.capsule.id for sc in result.capsules] == [c.id]
        assert result.capsules[0].tier == MatchTier.GIT_CORRELATION
        fake_git.assert_called_once_with(Path("/work/api"), ["src/retry.py"])

    def test_git_log_subprocess_args(self):
        completed = MagicMock(stdout="abc123\n\ndef456\n")
        with patch("recall.collaborators.subprocess.run", return_value=completed) as run:
            assert git_log_commits("/work/api", ["src/a.py"], limit=5) == ["abc123", "def456"]
        args = run.call_args.args[0]
        assert args == ["git", "-C", "/work/api", "log", "--format=%H", "-5", "--", "src/a.py"]

    def test_repo_path_from_registry(self, store, card_home):
        repos = card_home / "repos"
        repos.mkdir()
        (repos / "REPO_api.md").write_text("---\nid: REPO-api\nlocal_path: /work/api\n---\n\n# api\n")
        c = store.store(_capsule("s1", "Retry budget?", commits=["abc123"], repos=["REPO-api"]))
        seen = []

        def fake_git(repo_path, files):
            seen.append(str(repo_path))
            return ["abc123"]

        engine = RecallEngine(store, repos=FileRepoRegistry(card_home), git_log=fake_git)
        result = engine.query(RecallQuery(files=["src/retry.py"], repo_id="REPO-api"))
        assert seen == ["/work/api"]
        assert [sc.capsule.id for sc in result.capsules] == [c.id]

    def test_strategy_failure_is_skipped(self, store):
        c = store.store(_capsule("s1", "Auth?", tags=["file:src/auth.py"]))

        def broken_git(repo_path, files):
            raise OSError("git exploded")

        engine = RecallEngine(store, git_log=broken_git)
        result = engine.query(RecallQuery(files=["src/auth.py"], repo_path="/work/api"))
        assert [sc.capsule.id for sc in result.capsules] == [c.id]


class TestCollaborators:
    def test_registry_missing_repo(self, card_home):
        with pytest.raises(CapsuleNotFoundError):
            FileRepoRegistry(card_home).local_path("REPO-ghost")

    def test_session_index_missing(self, card_home):
        with pytest.raises(CapsuleNotFoundError):
            FileSessionIndex(card_home).get_session("ghost")

    def test_list_sessions_skips_missing_yaml(self, store, card_home):
        store.store(_capsule("s1", "A?"))
        assert FileSessionIndex(card_home).list_sessions() == []

    def test_git_log_failure_returns_empty(self, tmp_path):
        assert git_log_commits(tmp_path / "not-a-repo", ["a.py"]) == []
