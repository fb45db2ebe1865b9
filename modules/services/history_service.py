"""Per-user history of generated snippets stored in Cloud Firestore."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from config.settings import AppConfig
from modules.services.auth_service import Session
from modules.services.subscription import Subscription

logger = logging.getLogger(__name__)


class HistoryError(RuntimeError):
    """Raised when reading or writing history fails."""


@dataclass(slots=True, frozen=True)
class HistoryRecord:
    """One generated snippet; written once, never updated."""

    id: str
    component: str
    description: str
    code: str
    timestamp: Optional[datetime]
    user_id: str

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "HistoryRecord":
        timestamp = data.get("timestamp")
        return cls(
            id=doc_id,
            component=str(data.get("component") or ""),
            description=str(data.get("description") or ""),
            code=str(data.get("code") or ""),
            timestamp=timestamp if isinstance(timestamp, datetime) else None,
            user_id=str(data.get("userId") or ""),
        )


def sort_history(records: Iterable[HistoryRecord]) -> List[HistoryRecord]:
    """Newest first; records without a timestamp go last."""
    return sorted(
        records,
        key=lambda record: (
            record.timestamp is not None,
            record.timestamp.timestamp() if record.timestamp is not None else 0.0,
        ),
        reverse=True,
    )


HistoryCallback = Callable[[List[HistoryRecord]], None]


def create_firestore_client(config: AppConfig) -> Any:
    """Initialise the default Firebase app once and return a Firestore client."""
    if not firebase_admin._apps:
        options = {"projectId": config.firebase_project_id} if config.firebase_project_id else None
        if config.firebase_service_account is not None:
            if not config.firebase_service_account.exists():
                raise HistoryError(
                    f"Firebase service account not found: {config.firebase_service_account}"
                )
            cred = credentials.Certificate(str(config.firebase_service_account))
        else:
            cred = credentials.ApplicationDefault()
        firebase_admin.initialize_app(cred, options)
    return firestore.client()


def _watch_error(watch: Any, user_id: str) -> Optional[HistoryError]:
    """Return an error once a Firestore watch has shut itself down.

    Unrecoverable stream errors close the watch on a background thread
    without reaching the snapshot callback.
    """
    if getattr(watch, "is_active", True):
        return None
    return HistoryError(f"History listener for user {user_id} stopped.")


class HistoryStore:
    """Reads and writes ``artifacts/{appId}/users/{userId}/generatedCode``."""

    def __init__(self, app_id: str, client: Any = None, client_factory: Optional[Callable[[], Any]] = None) -> None:
        self.app_id = app_id
        self._client = client
        self._client_factory = client_factory

    @classmethod
    def from_config(cls, config: AppConfig) -> "HistoryStore":
        return cls(config.app_id, client_factory=lambda: create_firestore_client(config))

    def collection_path(self, user_id: str) -> str:
        return f"artifacts/{self.app_id}/users/{user_id}/generatedCode"

    def add_record(self, session: Session, component: str, description: str, code: str) -> str:
        """Persist a snippet for ``session`` and return the new document id."""
        if not session.can_save_history:
            raise HistoryError("Only signed-in accounts can save history.")
        document = {
            "component": component,
            "description": description,
            "code": code,
            "timestamp": firestore.SERVER_TIMESTAMP,
            "userId": session.user_id,
        }
        try:
            _, doc_ref = self._collection(session.user_id).add(document)
        except Exception as exc:  # noqa: BLE001
            raise HistoryError(f"Failed to save history: {exc}") from exc
        logger.info("Saved history record %s for user %s", doc_ref.id, session.user_id)
        return doc_ref.id

    def subscribe(
        self,
        user_id: str,
        on_update: HistoryCallback,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription[List[HistoryRecord]]:
        """Stream the user's history; every push carries the full list.

        Server-side ordering is not requested so no composite index is
        needed; callers sort with ``sort_history``.
        """
        subscription: Subscription[List[HistoryRecord]] = Subscription(
            on_update, on_error, name=f"history:{user_id}"
        )

        def _on_snapshot(docs, _changes, _read_time) -> None:
            try:
                records = [HistoryRecord.from_document(doc.id, doc.to_dict() or {}) for doc in docs]
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error reading code history snapshot")
                subscription.fail(HistoryError(str(exc)))
                return
            subscription.deliver(records)

        # Open first: the initial snapshot can arrive on the watch thread
        # before on_snapshot returns.
        subscription.open()
        try:
            watch = self._collection(user_id).on_snapshot(_on_snapshot)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error subscribing to code history: %s", exc)
            subscription.fail(HistoryError(str(exc)))
            return subscription

        subscription.set_teardown(watch.unsubscribe)
        subscription.set_health_check(lambda: _watch_error(watch, user_id))
        return subscription

    def _collection(self, user_id: str) -> Any:
        if self._client is None:
            if self._client_factory is None:
                raise HistoryError("Firestore client is not configured.")
            try:
                self._client = self._client_factory()
            except HistoryError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise HistoryError(f"Unable to initialise Firestore: {exc}") from exc
        return self._client.collection(self.collection_path(user_id))
