"""Shared fixtures for the notifier test-suite."""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

# Ensure the project root (which contains the ``notifier`` package) is importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TEST_DB_PATH = Path(__file__).parent / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
for _firebase_variable in (
    "FIREBASE_SERVICE_ACCOUNT_PATH",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_PRIVATE_KEY",
    "FIREBASE_CLIENT_EMAIL",
):
    os.environ.pop(_firebase_variable, None)

from notifier.application.dispatcher import BackgroundDispatcher  # noqa: E402
from notifier.domain.entities import (  # noqa: E402
    BatchPushResult,
    PushMessage,
    PushResult,
)
from notifier.infrastructure.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    initialize_database,
)
from notifier.infrastructure.models import UserModel  # noqa: E402


class FakePushGateway:
    """In-memory push gateway recording every call it receives."""

    def __init__(self, *, configured: bool = True) -> None:
        self.configured = configured
        self.single_calls: list[tuple[str, PushMessage]] = []
        self.batch_calls: list[tuple[list[str], PushMessage]] = []
        self.single_result: PushResult | Callable[[str], PushResult] = PushResult(
            success=True, message_id="projects/test/messages/1"
        )
        self.batch_result: BatchPushResult | Exception | None = None

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send_single(self, token: str, message: PushMessage) -> PushResult:
        self.single_calls.append((token, message))
        if callable(self.single_result):
            return self.single_result(token)
        return self.single_result

    def send_batch(self, tokens: Sequence[str], message: PushMessage) -> BatchPushResult:
        self.batch_calls.append((list(tokens), message))
        if isinstance(self.batch_result, Exception):
            raise self.batch_result
        if self.batch_result is not None:
            return self.batch_result
        return BatchPushResult(success_count=len(tokens))

    def status(self) -> dict[str, Any]:
        return {"initialized": True, "configured": self.configured, "project_id": "test-project"}

    @property
    def call_count(self) -> int:
        return len(self.single_calls) + len(self.batch_calls)


class FakeRealtimeBus:
    """Realtime bus that keeps published events in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, Any]] = []
        self.role_events: list[tuple[str, str, Any]] = []
        self.broadcasts: list[tuple[str, Any]] = []

    def publish(self, user_id: str, event: str, payload: Any) -> None:
        self.events.append((user_id, event, payload))

    def publish_to_role(self, role: str, event: str, payload: Any) -> None:
        self.role_events.append((role, event, payload))

    def publish_to_all(self, event: str, payload: Any) -> None:
        self.broadcasts.append((event, payload))

    def names_for(self, user_id: str) -> list[str]:
        return [event for target, event, _ in self.events if target == user_id]


@pytest.fixture()
def engine(tmp_path):
    """Return an engine bound to a fresh file-backed SQLite database."""

    db_engine = build_engine(f"sqlite:///{tmp_path / 'notifier.db'}")
    initialize_database(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture()
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def create_user(session_factory):
    """Insert an account row and return its identifier."""

    def _create(
        *,
        name: str = "Test User",
        role: str = "rider",
        device_token: str | None = None,
        is_active: bool = True,
        user_id: str | None = None,
    ) -> str:
        identifier = user_id or str(uuid.uuid4())
        db = session_factory()
        try:
            db.add(
                UserModel(
                    id=identifier,
                    name=name,
                    role=role,
                    is_active=is_active,
                    device_token=device_token,
                )
            )
            db.commit()
        finally:
            db.close()
        return identifier

    return _create


@pytest.fixture()
def push_gateway() -> FakePushGateway:
    return FakePushGateway()


@pytest.fixture()
def realtime_bus() -> FakeRealtimeBus:
    return FakeRealtimeBus()


@pytest.fixture()
def dispatcher():
    background = BackgroundDispatcher(max_workers=2)
    yield background
    background.shutdown(wait=True)
