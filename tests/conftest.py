"""
Shared fixtures for the messaging test suite.

Environment variables are set before anything from ``volunteerhub`` is
imported so the application binds to an in-memory database.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"

import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from volunteerhub.messaging.controller import ConversationViewController
from volunteerhub.middleware.auth import create_access_token
from volunteerhub.models.message import Message
from volunteerhub.models.user import User
from volunteerhub.realtime.feed import ChangeFeed, INSERT, UPDATE
from volunteerhub.services.message_store import MESSAGES_TABLE, MessageStore, StoreError, to_record
from volunteerhub.utils.metrics import metrics_collector

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"

BASE_TIME = datetime(2024, 5, 1, 10, 0, 0)


class FakeMessageStore:
    """In-memory store with injectable failures and a gate that holds writes in flight."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed
        self.messages: List[Message] = []
        self.profiles: Dict[str, User] = {}
        self.updates: List[dict] = []
        self._ids = itertools.count(1)
        self.next_id: Optional[int] = None
        self.fail_create = False
        self.fail_reads = False
        self.fail_updates = False
        self.create_gate: Optional[asyncio.Event] = None

    def add(self, sender_id, recipient_id, body, minutes=0, is_read=False) -> Message:
        """Seed a message without publishing it."""
        message = Message(
            id=next(self._ids),
            sender_id=sender_id,
            recipient_id=recipient_id,
            body=body,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            is_read=is_read,
        )
        self.messages.append(message)
        return message

    def add_profile(self, user_id, full_name=None, email=None):
        self.profiles[user_id] = User(id=user_id, email=email or f"{user_id}@example.org", full_name=full_name)

    def publish(self, message: Message, event: str = INSERT):
        self.feed.publish(MESSAGES_TABLE, event, to_record(message))

    async def create(self, record):
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create:
            raise StoreError(code="WRITE_FAILED", message="Could not create message")

        message_id = self.next_id if self.next_id is not None else next(self._ids)
        self.next_id = None
        message = Message(id=message_id, created_at=datetime.utcnow(), **record)
        self.messages.append(message)
        if self.feed is not None:
            self.publish(message)
        return message

    async def read_many(self, filter=None, order_by="created_at", descending=False, limit=None):
        if self.fail_reads:
            raise StoreError(code="READ_FAILED", message="Could not load messages")
        rows = [m for m in self.messages if filter is None or filter.matches(m)]
        rows.sort(key=lambda m: (getattr(m, order_by), m.id), reverse=descending)
        return rows[:limit] if limit else rows

    async def update(self, filter, patch):
        self.updates.append({"filter": filter, "patch": patch})
        if self.fail_updates:
            raise StoreError(code="WRITE_FAILED", message="Could not update messages")
        changed = []
        for message in self.messages:
            if filter.matches(message):
                for key, value in patch.items():
                    setattr(message, key, value)
                changed.append(message)
                if self.feed is not None:
                    self.publish(message, UPDATE)
        return changed

    async def get_profiles(self, user_ids):
        return {uid: self.profiles[uid] for uid in user_ids if uid in self.profiles}


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics_collector.reset()
    yield


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(engine, feed):
    return MessageStore(engine, feed)


@pytest.fixture
def fake_store(feed):
    store = FakeMessageStore(feed)
    store.add_profile(ALICE, full_name="Alice Volunteer")
    store.add_profile(BOB, full_name="Bob's Food Bank")
    store.add_profile(CAROL, email="carol@example.org")
    return store


@pytest.fixture
def controller(fake_store, feed):
    """Controller for Alice with a short toast lifetime."""
    return ConversationViewController(fake_store, feed, ALICE, toast_seconds=0.05, timezone="UTC")


@pytest.fixture
def settle(feed):
    """Wait until feed deliveries and background read receipts have run."""
    async def _settle(*controllers):
        for _ in range(3):
            await feed.flush()
            for c in controllers:
                await c.drain()
    return _settle


@pytest.fixture
def make_token():
    def _make(user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
        return create_access_token(user_id, email=f"{user_id}@example.org", expires_in=expires_in)
    return _make


@pytest.fixture
def client():
    """TestClient over the application bound to a clean in-memory database."""
    from fastapi.testclient import TestClient
    from volunteerhub.db.config import engine as app_engine
    from volunteerhub.main import app

    SQLModel.metadata.drop_all(app_engine)
    with TestClient(app) as test_client:
        with Session(app_engine) as session:
            session.add(User(id=ALICE, email="alice@example.org", full_name="Alice Volunteer"))
            session.add(User(id=BOB, email="bob@example.org", full_name="Bob's Food Bank"))
            session.add(User(id=CAROL, email="carol@example.org"))
            session.commit()
        yield test_client
    SQLModel.metadata.drop_all(app_engine)


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers
