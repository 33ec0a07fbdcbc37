# tests/conftest.py
"""
Pytest configuration for the messaging core.

Every test runs against a fresh in-memory SQLite database and, where live
updates are involved, an in-memory Broadcaster. Nothing here can reach a
real database or Redis.
"""

import os

# Set test configuration BEFORE any conekt imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BROADCAST_URL"] = "memory://"
os.environ["SECRET_KEY"] = "test-secret-key-for-hs256-signing-0123456789"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta, timezone
from typing import Dict, Generator

from fastapi.testclient import TestClient
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from conekt.auth import create_access_token
from conekt.core.broadcast import connect_broadcast, disconnect_broadcast
from conekt.core.config import settings
from conekt.database import Base, get_db
from conekt.domain.conversation_identity import derive_conversation_id
from conekt.domain.participants import Role
from conekt.main import app
from conekt.models import Message, User
from conekt.principal import UserPrincipal
from conekt.repositories.conversation_repository import ConversationRepository
from conekt.repositories.message_repository import MessageRepository


def _validate_test_database_url(database_url: str) -> None:
    """Refuse to run against anything but a local SQLite database."""
    if not database_url.startswith("sqlite"):
        raise RuntimeError(
            f"Tests wipe the database after each test; refusing to use {database_url[:30]}..."
        )


_validate_test_database_url(settings.database_url)

# One connection shared by every session so the in-memory schema survives
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a new database session (and schema) for each test."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest_asyncio.fixture
async def broadcast():
    """Connect the shared Broadcaster to the in-memory backend."""
    instance = await connect_broadcast("memory://")
    yield instance
    await disconnect_broadcast()


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # No context manager: the lifespan (and its Broadcaster) stays off
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


def _create_user(db: Session, name: str, role: Role) -> User:
    user = User(name=name, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_therapist(db: Session) -> User:
    """Create a test therapist."""
    return _create_user(db, "Dr. Tess Therapist", Role.THERAPIST)


@pytest.fixture
def test_client_user(db: Session) -> User:
    """Create a test client."""
    return _create_user(db, "Casey Client", Role.CLIENT)


@pytest.fixture
def test_client_user_2(db: Session) -> User:
    """Create a second test client."""
    return _create_user(db, "Charlie Client", Role.CLIENT)


@pytest.fixture
def test_therapist_2(db: Session) -> User:
    """Create a second test therapist."""
    return _create_user(db, "Dr. Theo Therapist", Role.THERAPIST)


@pytest.fixture
def therapist_principal(test_therapist: User) -> UserPrincipal:
    return UserPrincipal(user_id=test_therapist.id, role=Role.THERAPIST)


@pytest.fixture
def client_principal(test_client_user: User) -> UserPrincipal:
    return UserPrincipal(user_id=test_client_user.id, role=Role.CLIENT)


@pytest.fixture
def client_2_principal(test_client_user_2: User) -> UserPrincipal:
    return UserPrincipal(user_id=test_client_user_2.id, role=Role.CLIENT)


def _auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_therapist(test_therapist: User) -> Dict[str, str]:
    """Get auth headers for the test therapist."""
    return _auth_headers(test_therapist)


@pytest.fixture
def auth_headers_client(test_client_user: User) -> Dict[str, str]:
    """Get auth headers for the test client."""
    return _auth_headers(test_client_user)


@pytest.fixture
def auth_headers_client_2(test_client_user_2: User) -> Dict[str, str]:
    """Get auth headers for the second test client."""
    return _auth_headers(test_client_user_2)


SEED_BASE = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def seed_message(db: Session):
    """
    Factory persisting a message (and its conversation row) at a fixed offset.

    Usage:
        seed_message(sender, receiver, "hi", minutes=1)
    """

    def _seed(
        sender: User, receiver: User, body: str = "hello", minutes: int = 0, read: bool = False
    ) -> Message:
        conversation_id = derive_conversation_id(sender.id, receiver.id)
        therapist, client_user = (
            (sender, receiver) if sender.role is Role.THERAPIST else (receiver, sender)
        )
        conversations = ConversationRepository(db)
        conversations.get_or_create(conversation_id, therapist.id, client_user.id)
        sent_at = SEED_BASE + timedelta(minutes=minutes)
        message = MessageRepository(db).create_message(
            conversation_id=conversation_id,
            sender_id=sender.id,
            receiver_id=receiver.id,
            body=body,
            created_at=sent_at,
        )
        message.read = read
        conversations.update_last_message_at(conversation_id, sent_at)
        db.commit()
        return message

    return _seed
