# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets a fresh in-memory SQLite database built from the models,
and a fixed "now" for the reservation rules.
"""

import os

# Set before any tutoring import so the module-level engine stays in memory.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tutoring.database import Base
from tutoring.models.availability import AvailableSlot
from tutoring.models.purchase import CoursePurchase
from tutoring.models.teacher import Teacher

from tests.factories.reservation_builders import (
    COURSE_ID,
    NOW,
    OTHER_STUDENT_ID,
    OTHER_TEACHER_USER_ID,
    STUDENT_ID,
    TEACHER_USER_ID,
    make_reservation,
)


@pytest.fixture(scope="function")
def db():
    """Create a new database session for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the reservation service clock to NOW; returns a setter for moving it."""
    current = {"now": NOW}
    monkeypatch.setattr(
        "tutoring.services.reservation_service._now_utc", lambda: current["now"]
    )

    def set_now(value: datetime) -> None:
        current["now"] = value

    return set_now


@pytest.fixture
def teacher(db: Session) -> Teacher:
    teacher = Teacher(user_id=TEACHER_USER_ID, display_name="Test Teacher")
    db.add(teacher)
    db.commit()
    return teacher


@pytest.fixture
def other_teacher(db: Session) -> Teacher:
    teacher = Teacher(user_id=OTHER_TEACHER_USER_ID, display_name="Other Teacher")
    db.add(teacher)
    db.commit()
    return teacher


@pytest.fixture
def purchase(db: Session) -> CoursePurchase:
    purchase = CoursePurchase(
        user_id=STUDENT_ID, course_id=COURSE_ID, quantity_total=5, quantity_used=0
    )
    db.add(purchase)
    db.commit()
    return purchase


@pytest.fixture
def other_purchase(db: Session) -> CoursePurchase:
    purchase = CoursePurchase(
        user_id=OTHER_STUDENT_ID, course_id=COURSE_ID, quantity_total=3, quantity_used=0
    )
    db.add(purchase)
    db.commit()
    return purchase


@pytest.fixture
def teacher_with_slots(db: Session, teacher: Teacher) -> Teacher:
    """Monday 09:00-10:00, Monday 18:00-20:00 and Tuesday 09:00-12:00."""
    db.add_all(
        [
            AvailableSlot(teacher_id=teacher.id, weekday=1, start_time=time(9), end_time=time(10)),
            AvailableSlot(teacher_id=teacher.id, weekday=1, start_time=time(18), end_time=time(20)),
            AvailableSlot(teacher_id=teacher.id, weekday=2, start_time=time(9), end_time=time(12)),
        ]
    )
    db.commit()
    return teacher


@pytest.fixture
def reservation_factory(db: Session, teacher: Teacher):
    def _factory(reserve_time: datetime = NOW + timedelta(days=7), **kwargs):
        return make_reservation(db, teacher, reserve_time, **kwargs)

    return _factory
