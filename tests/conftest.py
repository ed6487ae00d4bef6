from pathlib import Path
import os
import random
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Module-level engine / settings are created on import; keep them in memory.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("HOST_TOKEN_SECRET", "test-secret")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from api.deps import get_roulette_rng
from database import Base, get_db
from main import app
from realtime.broadcaster import Broadcaster, get_broadcaster
from realtime.hub import CallbackSubscriber, ChannelHub


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def hub():
    return ChannelHub()


@pytest.fixture()
def broadcaster(hub):
    return Broadcaster(hub)


@pytest.fixture()
def client(session_factory, broadcaster):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_roulette_rng] = lambda: random.Random(7)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def trustee(client):
    response = client.post("/api/users", json={"username": "alice"})
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture()
def room(client, trustee):
    response = client.post(
        "/api/rooms",
        json={"trusteeId": trustee["id"], "roomName": "Baby Lee", "category": "female"},
    )
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture()
def host_headers(room):
    return {"X-Host-Token": room["hostToken"]}


@pytest.fixture()
def room_events(hub, room):
    """Everything published on the room channel, in order."""
    received = []
    hub.subscribe(f"room-{room['id']}", CallbackSubscriber(received.append))
    return received
