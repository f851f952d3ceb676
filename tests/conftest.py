"""Pytest bootstrap for project imports and shared session fixtures."""

from datetime import datetime, timedelta
from pathlib import Path
import os
import sys

# Ensure project root is on sys.path so `import skillhub` works without install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

# Importing skillhub.main creates tables on the configured engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from skillhub.database import Base
from skillhub import models
from skillhub.services import notification_service, session_service
from skillhub.services.cache_service import session_view_cache

START = datetime(2026, 3, 2, 10, 0, 0)


@pytest.fixture
def db_session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def _isolate_collaborators(monkeypatch):
    """No SMTP traffic and a cold listing cache for every test."""
    monkeypatch.setattr(notification_service, "is_email_enabled", lambda: False)
    session_view_cache.clear()
    yield
    session_view_cache.clear()


def create_user(db, email: str, name: str) -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash="hash",
        role="student",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def offer_skill(db, user: models.User, title: str, skill_type: str = "teach") -> models.Skill:
    skill = db.query(models.Skill).filter(models.Skill.title == title).first()
    if skill is None:
        skill = models.Skill(title=title, category="General")
        db.add(skill)
        db.flush()
    db.add(models.UserSkill(user_id=user.id, skill_id=skill.id, skill_type=skill_type))
    db.commit()
    return skill


def propose(db, proposer, counterpart, skill_a, skill_b, **overrides) -> models.Session:
    terms = dict(
        counterpart_id=counterpart.id,
        skill_a_id=skill_a.id,
        description_a="I will teach Python basics",
        skill_b_id=skill_b.id,
        description_b="Teach me guitar chords",
        start_date=START,
        expected_end_date=START + timedelta(days=14),
    )
    terms.update(overrides)
    return session_service.create_session(db, proposer, **terms)


@pytest.fixture
def alice(db_session):
    return create_user(db_session, "alice@test.edu", "Alice")


@pytest.fixture
def bob(db_session):
    return create_user(db_session, "bob@test.edu", "Bob")


@pytest.fixture
def carol(db_session):
    return create_user(db_session, "carol@test.edu", "Carol")


@pytest.fixture
def skills(db_session, alice, bob, carol):
    """(python offered by alice, guitar offered by bob); carol offers cooking."""
    python = offer_skill(db_session, alice, "Python")
    guitar = offer_skill(db_session, bob, "Guitar")
    offer_skill(db_session, carol, "Cooking")
    return python, guitar


@pytest.fixture
def pending_session(db_session, alice, bob, skills):
    python, guitar = skills
    return propose(db_session, alice, bob, python, guitar)


@pytest.fixture
def active_session(db_session, bob, pending_session):
    session, _ = session_service.respond_to_session(db_session, bob, pending_session.id, "accept")
    return session
