"""Shared fakes for the auth provider, history store and proxy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from modules.client.controller import ForgeController
from modules.proxy.client import ProxyClientError
from modules.services.auth_service import AuthError, AuthUser, Session
from modules.services.history_service import HistoryError, HistoryRecord
from modules.services.subscription import Subscription


class FakeAuth:
    """In-memory stand-in for AuthService with the same notification rules."""

    def __init__(self) -> None:
        self.current_user: Optional[AuthUser] = None
        self.accounts: Dict[str, str] = {"maker@example.com": "secret123"}
        self.anonymous_error: Optional[AuthError] = None
        self.anonymous_calls = 0
        self._listeners: List[Subscription] = []

    def on_auth_state_changed(self, callback, on_error=None) -> Subscription:
        subscription = Subscription(callback, on_error, name="fake-auth")
        self._listeners.append(subscription)
        subscription.open(lambda: self._listeners.remove(subscription))
        subscription.deliver(self.current_user)
        return subscription

    def _set(self, user: Optional[AuthUser]) -> Optional[AuthUser]:
        self.current_user = user
        for subscription in list(self._listeners):
            subscription.deliver(user)
        return user

    def sign_in_anonymously(self) -> AuthUser:
        self.anonymous_calls += 1
        if self.anonymous_error is not None:
            raise self.anonymous_error
        return self._set(AuthUser(uid=f"anon-{self.anonymous_calls}", is_anonymous=True))

    def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        if "@" not in email:
            raise AuthError("auth/invalid-email")
        if self.accounts.get(email) != password:
            raise AuthError("auth/invalid-credential")
        return self._set(AuthUser(uid=f"uid-{email}", is_anonymous=False, email=email))

    def create_account(self, email: str, password: str) -> AuthUser:
        if email in self.accounts:
            raise AuthError("auth/email-already-in-use")
        if len(password) < 6:
            raise AuthError("auth/weak-password")
        self.accounts[email] = password
        return self._set(AuthUser(uid=f"uid-{email}", is_anonymous=False, email=email))

    def sign_out(self) -> None:
        self._set(None)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class FakeHistoryStore:
    """Keeps documents per user and pushes the full list on every write."""

    def __init__(self) -> None:
        self.documents: Dict[str, List[HistoryRecord]] = {}
        self.subscriptions: Dict[str, List[Subscription]] = {}
        self.writes: List[Session] = []
        self.fail_writes = False
        self.push_on_write = True
        self.stalled: Dict[str, bool] = {}
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def subscribe(self, user_id: str, on_update, on_error=None) -> Subscription:
        subscription = Subscription(on_update, on_error, name=f"fake-history:{user_id}")
        subscription.open()
        subscription.set_health_check(
            lambda: HistoryError("listener stopped") if self.stalled.get(user_id) else None
        )
        self.subscriptions.setdefault(user_id, []).append(subscription)
        subscription.deliver(list(self.documents.get(user_id, [])))
        return subscription

    def active_subscriptions(self, user_id: str) -> List[Subscription]:
        return [sub for sub in self.subscriptions.get(user_id, []) if sub.active]

    def push(self, user_id: str, records: List[HistoryRecord]) -> None:
        for subscription in self.active_subscriptions(user_id):
            subscription.deliver(list(records))

    def stall(self, user_id: str) -> None:
        """Stop the listener silently, as a closed Firestore watch does."""
        self.stalled[user_id] = True

    def fail(self, user_id: str, error: Exception) -> None:
        for subscription in self.active_subscriptions(user_id):
            subscription.fail(error)

    def add_record(self, session: Session, component: str, description: str, code: str) -> str:
        if self.fail_writes:
            raise HistoryError("permission denied")
        self.writes.append(session)
        self._clock += timedelta(minutes=1)
        records = self.documents.setdefault(session.user_id, [])
        record = HistoryRecord(
            id=f"doc-{len(self.writes)}",
            component=component,
            description=description,
            code=code,
            timestamp=self._clock,
            user_id=session.user_id,
        )
        records.append(record)
        if self.push_on_write:
            self.push(session.user_id, records)
        return record.id


class FakeProxy:
    """Returns canned code or raises the configured proxy error."""

    def __init__(self, code: str = "void setup() {}\nvoid loop() {}\n") -> None:
        self.code = code
        self.error: Optional[str] = None
        self.calls: List[tuple] = []
        self.before_return: Optional[Callable[[], None]] = None

    def generate(self, component: str, description: str, model: str = "gemini-2.0-flash") -> str:
        self.calls.append((component, description, model))
        if self.before_return is not None:
            self.before_return()
        if self.error is not None:
            raise ProxyClientError(self.error)
        return self.code


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def fake_store() -> FakeHistoryStore:
    return FakeHistoryStore()


@pytest.fixture
def fake_proxy() -> FakeProxy:
    return FakeProxy()


@pytest.fixture
def make_controller(fake_auth, fake_store, fake_proxy):
    created: List[ForgeController] = []

    def _make(start: bool = True) -> ForgeController:
        controller = ForgeController(
            auth=fake_auth,
            history_store=fake_store,
            proxy=fake_proxy,
            id_factory=lambda: "local-id",
        )
        if start:
            controller.start()
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.close()
