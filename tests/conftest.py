import os
import sys
from datetime import datetime

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from zadachi import db
from zadachi import models  # ensure models are registered with metadata
from zadachi.main import app, get_now


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

def override_get_session():
    with Session(test_engine) as session:
        yield session


def reset_database():
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


db.engine = test_engine
app.dependency_overrides[db.get_session] = override_get_session


@pytest.fixture(autouse=True)
def setup_db():
    reset_database()
    yield


@pytest.fixture
def clock():
    frozen = Clock(datetime(2024, 3, 1, 9, 0))
    app.dependency_overrides[get_now] = frozen
    yield frozen
    app.dependency_overrides.pop(get_now, None)


@pytest.fixture
def client(clock):
    reset_database()
    return TestClient(app)


@pytest.fixture
def session():
    with Session(test_engine) as session:
        yield session
