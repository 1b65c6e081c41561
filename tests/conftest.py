import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("TESTING", "true")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from assessment.core.config import settings
from assessment.core.database import Base
import assessment.models  # noqa: F401
from assessment.services.attempt_store import SQLAlchemyAttemptStore
from assessment.services.countdown import CountdownScheduler
from assessment.services.course_progress import CourseProgressService
from assessment.services.exam_attempt import AttemptStateMachine
from assessment.services.question_catalog import QuestionCatalog
from assessment.utils import deps as deps_utils
from assessment.utils.events import EventBus
import main


class FakeClock:
    """Settable naive-UTC clock shared by the engine, countdown and buffers."""

    def __init__(self, now: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def database_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(database_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=database_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def store(session_factory):
    return SQLAlchemyAttemptStore(session_factory)


@pytest.fixture
def countdown(clock):
    return CountdownScheduler(scheduler=None, clock=clock, tick_seconds=1)


@pytest.fixture
def progress_service(session_factory, clock, events):
    service = CourseProgressService(session_factory, clock=clock)
    service.register(events)
    return service


@pytest.fixture
def engine(session_factory, store, countdown, clock, events, progress_service):
    return AttemptStateMachine(
        store=store,
        catalog=QuestionCatalog(session_factory),
        countdown=countdown,
        events=events,
        clock=clock,
    )


@pytest.fixture(scope="function")
def client(db_session, engine, progress_service):
    main.app.dependency_overrides[deps_utils.get_transactional_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_attempt_engine] = lambda: engine
    main.app.dependency_overrides[deps_utils.get_progress_service] = lambda: progress_service
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def token_for():
    def _token_for(user_id: int, role: str = "student") -> str:
        return jwt.encode({"user_id": user_id, "role": role}, settings.SECRET_KEY, algorithm="HS256")
    return _token_for


@pytest.fixture
def auth_headers(token_for):
    def _auth_headers(user_id: int, role: str = "student"):
        return {"Authorization": f"Bearer {token_for(user_id, role)}"}
    return _auth_headers
