"""Shared test fixtures for card."""

import logging
import sys
from pathlib import Path

import pytest
import structlog

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def card_home(tmp_path, monkeypatch):
    """Isolated CARD_HOME; cwd moved so no stray card.yaml is picked up."""
    home = tmp_path / "card"
    home.mkdir()
    monkeypatch.setenv("CARD_HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def store(card_home):
    """CapsuleStore rooted at the temp home."""
    from capsules.store import CapsuleStore

    return CapsuleStore(card_home)


@pytest.fixture
def auth_capsules(store):
    """Two sessions of auth decisions: a plan/execute evolution and a follow-up."""
    from capsules.models import Capsule

    plan = Capsule.create(
        "20260110-auth",
        "plan",
        "Which auth strategy for the API?",
        choice="JWT tokens",
        rationale="Stateless and easy to scale",
        alternatives=["JWT tokens", "Server sessions"],
        tags=["src/auth/login.ts", "auth"],
        repos=["REPO-api"],
    )
    execute = Capsule.create(
        "20260110-auth",
        "execute",
        "Which auth strategy for the API?",
        choice="JWT tokens with refresh rotation",
        rationale="Short-lived access tokens",
        tags=["src/auth/login.ts", "auth"],
        repos=["REPO-api"],
    )
    storage = Capsule.create(
        "20260112-tokens",
        "plan",
        "Where are refresh tokens stored?",
        choice="user_tokens table",
        rationale="Revocable per device",
        tags=["user_tokens", "src/auth/refresh.ts"],
        repos=["REPO-api"],
        enabled_by=execute.id,
    )
    for c in (plan, execute, storage):
        store.store(c)
    return {"plan": plan, "execute": execute, "storage": storage}


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to streams captured by a previous test."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
