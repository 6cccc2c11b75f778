"""Tests for capsule models: IDs, type inference, validation, filters."""

import hashlib

import pytest

from capsules.models import Capsule, CapsuleFilter, generate_id, phase_rank
from shared_types import CapsuleStatus, CapsuleType, Significance


def _capsule(**kwargs):
    defaults = dict(session_id="s1", phase="plan", question="Which cache?", choice="Redis")
    defaults.update(kwargs)
    return Capsule.create(
        defaults.pop("session_id"), defaults.pop("phase"), defaults.pop("question"), **defaults
    )


class TestGenerateId:
    def test_format(self):
        expected = hashlib.sha256(b"Which cache?").hexdigest()[:8]
        assert generate_id("s1", "plan", "Which cache?") == f"s1-plan-{expected}"

    def test_deterministic(self):
        assert generate_id("s1", "plan", "Q") == generate_id("s1", "plan", "Q")

    def test_phase_changes_id(self):
        assert generate_id("s1", "plan", "Q") != generate_id("s1", "execute", "Q")

    def test_empty_id_is_generated(self):
        c = Capsule(id="", session_id="s1", phase="plan", question="Q")
        assert c.id == generate_id("s1", "plan", "Q")


class TestPhaseRank:
    def test_known_order(self):
        assert phase_rank("execute") > phase_rank("plan") > phase_rank("ask")

    def test_unknown_ranks_lowest(self):
        assert phase_rank("brainstorm") == -1
        assert phase_rank("brainstorm") < phase_rank("quickfix-seed")


class TestTypeInference:
    def test_alternatives_make_decision(self):
        assert _capsule(alternatives=["Redis", "Memcached"]).type == CapsuleType.DECISION

    def test_no_alternatives_make_finding(self):
        assert _capsule().type == CapsuleType.FINDING

    def test_explicit_type_kept(self):
        assert _capsule(type=CapsuleType.DECISION).type == CapsuleType.DECISION


class TestValidate:
    def test_valid(self):
        _capsule().validate()

    def test_empty_question(self):
        with pytest.raises(ValueError, match="empty question"):
            _capsule(question="  ").validate()

    def test_missing_session(self):
        with pytest.raises(ValueError, match="no session"):
            _capsule(session_id="").validate()

    def test_invalidated_needs_reason(self):
        with pytest.raises(ValueError, match="invalidation reason"):
            _capsule(status=CapsuleStatus.INVALIDATED).validate()

    def test_finding_with_alternatives(self):
        c = _capsule(alternatives=["a"], type=CapsuleType.FINDING)
        with pytest.raises(ValueError, match="alternatives"):
            c.validate()


class TestRecordedAt:
    def test_prefers_timestamp(self):
        from datetime import datetime, timezone

        ts = datetime(2025, 1, 1, tzinfo=timezone.utc)
        c = _capsule(timestamp=ts)
        assert c.recorded_at == ts

    def test_falls_back_to_created(self):
        c = _capsule()
        assert c.recorded_at == c.created_at


class TestCapsuleFilter:
    def test_empty_filter_matches_active(self):
        assert CapsuleFilter().matches(_capsule())

    def test_invalidated_excluded_by_default(self):
        c = _capsule(status=CapsuleStatus.INVALIDATED, invalidation_reason="stale")
        assert not CapsuleFilter().matches(c)
        assert CapsuleFilter(include_invalidated=True).matches(c)

    def test_tag_is_case_insensitive_exact(self):
        c = _capsule(tags=["concept:Caching"])
        assert CapsuleFilter(tag="concept:caching").matches(c)
        assert not CapsuleFilter(tag="concept:cach").matches(c)

    def test_file_path_is_substring(self):
        c = _capsule(tags=["file:src/cache/redis.py"])
        assert CapsuleFilter(file_path="cache/redis").matches(c)
        assert not CapsuleFilter(file_path="src/db").matches(c)

    def test_repo_and_significance(self):
        c = _capsule(repos=["REPO-a"], significance=Significance.ARCHITECTURAL)
        assert CapsuleFilter(repo_id="REPO-a", significance=Significance.ARCHITECTURAL).matches(c)
        assert not CapsuleFilter(repo_id="REPO-b").matches(c)

    def test_phase_and_session(self):
        c = _capsule()
        assert CapsuleFilter(session_id="s1", phase="plan").matches(c)
        assert not CapsuleFilter(phase="execute").matches(c)
