"""Session, history and generation state for one browser session."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

from config.settings import DEFAULT_MODEL
from modules.services.auth_service import AuthError, AuthService, AuthUser, Session
from modules.services.history_service import HistoryError, HistoryRecord, HistoryStore, sort_history
from modules.services.subscription import Subscription

logger = logging.getLogger(__name__)

ANONYMOUS_SIGN_IN_FAILED = "Failed to sign in anonymously. Please try again."
SIGN_OUT_FAILED = "Failed to sign out. Please try again."
HISTORY_REQUIRES_LOGIN = "Log in or sign up to save and view your code history."
FEATURES_REQUIRE_LOGIN = "You need to log in or sign up to use all features."
HISTORY_LOAD_FAILED = "Failed to load code history."
SAVE_REQUIRES_LOGIN = "Code generated. Log in to save it to your history."
SAVE_FAILED = "Code generated but failed to save to history."
SESSION_CHANGED = "Code generated, but your session changed before it could be saved."
EMPTY_RESULT = "No code received from the proxy function. Please try a different description."


class SessionState(str, Enum):
    """Where the client is in the sign-in lifecycle."""

    AUTH_LOADING = "auth_loading"
    UNAUTHENTICATED = "unauthenticated"  # anonymous sign-in failed; local id only
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class CodeProxy(Protocol):
    def generate(self, component: str, description: str, model: str = DEFAULT_MODEL) -> str:
        ...


@dataclass(slots=True, frozen=True)
class ControllerSnapshot:
    """Read-only view handed to the renderer."""

    state: SessionState
    user_id: Optional[str]
    history: Tuple[HistoryRecord, ...]
    history_notice: Optional[str]
    generated_code: str
    error: Optional[str]
    auth_error: Optional[str]
    is_busy: bool
    is_login_mode: bool
    component: str = ""
    description: str = ""

    @property
    def is_loading(self) -> bool:
        return self.state is SessionState.AUTH_LOADING

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def can_generate(self) -> bool:
        return not self.is_busy and bool(self.component) and bool(self.description.strip())


class ForgeController:
    """Drives the UI from auth notifications, history pushes and user actions.

    All mutations go through one re-entrant lock because provider callbacks
    may arrive on SDK threads. Network calls are made without holding it.
    """

    def __init__(
        self,
        auth: AuthService,
        history_store: HistoryStore,
        proxy: CodeProxy,
        model: str = DEFAULT_MODEL,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._auth = auth
        self._history_store = history_store
        self._proxy = proxy
        self._model = model
        self._id_factory = id_factory
        self._lock = threading.RLock()

        self.state = SessionState.AUTH_LOADING
        self.session: Optional[Session] = None
        self.user_id: Optional[str] = None
        self.history: List[HistoryRecord] = []
        self.history_notice: Optional[str] = None
        self.generated_code = ""
        self.error: Optional[str] = None
        self.auth_error: Optional[str] = None
        self.is_busy = False
        self.is_login_mode = True
        self.component = ""
        self.description = ""

        self._auth_subscription: Optional[Subscription[Optional[AuthUser]]] = None
        self._history_subscription: Optional[Subscription[List[HistoryRecord]]] = None
        self._history_user: Optional[str] = None
        self._history_token: Optional[object] = None
        self._pending_session: Optional[Session] = None

    # Lifecycle ---------------------------------------------------------------
    def start(self) -> None:
        """Subscribe to auth notifications. Calling twice is a no-op."""
        with self._lock:
            if self._auth_subscription is not None:
                return
        subscription = self._auth.on_auth_state_changed(self.on_auth_changed)
        with self._lock:
            self._auth_subscription = subscription

    def close(self) -> None:
        """Tear down every subscription this controller opened."""
        with self._lock:
            auth_subscription, self._auth_subscription = self._auth_subscription, None
            self._close_history_locked()
        if auth_subscription is not None:
            auth_subscription.close()

    # Auth --------------------------------------------------------------------
    def on_auth_changed(self, user: Optional[AuthUser]) -> None:
        if user is not None:
            with self._lock:
                self.session = Session.from_user(user)
                self.user_id = user.uid
                if user.is_anonymous:
                    self.state = SessionState.ANONYMOUS
                else:
                    self.state = SessionState.AUTHENTICATED
                    self.auth_error = None
                logger.info("Session is now %s (uid=%s)", self.state.value, user.uid)
                self._sync_history_locked()
            return

        with self._lock:
            self.session = None
            self.state = SessionState.AUTH_LOADING
            self._sync_history_locked()
        try:
            # Success re-enters on_auth_changed with the anonymous user.
            self._auth.sign_in_anonymously()
        except AuthError as exc:
            logger.error("Anonymous sign-in failed: %s", exc)
            with self._lock:
                if self.session is None:
                    self.auth_error = ANONYMOUS_SIGN_IN_FAILED
                    self.user_id = self._id_factory()
                    self.state = SessionState.UNAUTHENTICATED
                    self._sync_history_locked()

    def toggle_mode(self) -> None:
        with self._lock:
            self.is_login_mode = not self.is_login_mode
            self.auth_error = None

    def submit_credentials(self, email: str, password: str) -> bool:
        """Log in or sign up depending on ``is_login_mode``; True on success."""
        with self._lock:
            if self.is_busy:
                return False
            self.auth_error = None
            self.is_busy = True
            login = self.is_login_mode
        try:
            if login:
                self._auth.sign_in_with_password(email, password)
            else:
                self._auth.create_account(email, password)
            return True
        except AuthError as exc:
            logger.error("Authentication error (%s): %s", exc.code, exc)
            with self._lock:
                self.auth_error = exc.user_message
            return False
        finally:
            with self._lock:
                self.is_busy = False

    def sign_out(self) -> None:
        with self._lock:
            self.auth_error = None
            self.state = SessionState.AUTH_LOADING
            self._close_history_locked()
            self.history = []
        try:
            self._auth.sign_out()
        except AuthError as exc:
            logger.error("Sign out error: %s", exc)
            with self._lock:
                self.auth_error = SIGN_OUT_FAILED
            self.on_auth_changed(self._auth.current_user)

    # History -----------------------------------------------------------------
    def _sync_history_locked(self) -> None:
        if self.state is SessionState.AUTHENTICATED and self.session is not None:
            self.history_notice = None
            if self._history_subscription is not None and self._history_user == self.session.user_id:
                return
            self._close_history_locked()
            self._open_history_locked(self.session.user_id)
            return

        self._close_history_locked()
        self.history = []
        if self.state is SessionState.ANONYMOUS:
            self.history_notice = HISTORY_REQUIRES_LOGIN
        elif self.state is SessionState.UNAUTHENTICATED:
            self.history_notice = FEATURES_REQUIRE_LOGIN
        else:
            self.history_notice = None

    def _open_history_locked(self, user_id: str) -> None:
        token = object()

        def _on_update(records: List[HistoryRecord]) -> None:
            with self._lock:
                if self._history_token is token:
                    self.history = sort_history(records)

        def _on_error(exc: Exception) -> None:
            logger.error("Error fetching code history: %s", exc)
            with self._lock:
                if self._history_token is token:
                    self.error = HISTORY_LOAD_FAILED

        self._history_user = user_id
        self._history_token = token
        self._history_subscription = self._history_store.subscribe(user_id, _on_update, _on_error)

    def check_history(self) -> bool:
        """Surface a history listener that stopped without reporting an error."""
        with self._lock:
            subscription = self._history_subscription
        if subscription is None:
            return True
        return subscription.poll()

    def _close_history_locked(self) -> None:
        subscription, self._history_subscription = self._history_subscription, None
        self._history_user = None
        self._history_token = None
        if subscription is not None:
            subscription.close()

    # Generation --------------------------------------------------------------
    def set_form(self, component: Optional[str], description: Optional[str]) -> None:
        with self._lock:
            self.component = component or ""
            self.description = description or ""

    def start_generation(self) -> bool:
        """Claim the single generation slot and reset the output panel."""
        with self._lock:
            if self.is_busy:
                return False
            self.is_busy = True
            self.generated_code = ""
            self.error = None
            self._pending_session = self.session
            return True

    def run_generation(self, component: str, description: str) -> None:
        """Call the proxy and save the result; requires ``start_generation``."""
        with self._lock:
            session = self._pending_session
            self._pending_session = None
        try:
            try:
                code = self._proxy.generate(component, description, model=self._model)
            except Exception as exc:  # noqa: BLE001
                logger.error("Error generating code via proxy: %s", exc)
                with self._lock:
                    self.error = f"Failed to generate code: {str(exc) or 'An unknown error occurred.'}"
                    self.generated_code = ""
                return

            if not code:
                with self._lock:
                    self.error = EMPTY_RESULT
                    self.generated_code = ""
                return

            with self._lock:
                self.generated_code = code
                self.error = None
            self._save(session, component, description, code)
        finally:
            with self._lock:
                self.is_busy = False

    def generate(self, component: str, description: str) -> bool:
        if not self.start_generation():
            return False
        self.run_generation(component, description)
        return True

    def _save(self, session: Optional[Session], component: str, description: str, code: str) -> None:
        if session is None or not session.can_save_history:
            with self._lock:
                self.error = SAVE_REQUIRES_LOGIN
            return
        with self._lock:
            still_current = self.session == session and self.state is SessionState.AUTHENTICATED
            if not still_current:
                logger.warning("Session changed during generation; skipping history write")
                self.error = SESSION_CHANGED
                return
        try:
            self._history_store.add_record(session, component, description, code)
        except HistoryError as exc:
            logger.error("Error saving code to history: %s", exc)
            with self._lock:
                self.error = SAVE_FAILED

    def view_code(self, record_id: str) -> bool:
        """Show a history entry's code in the output panel."""
        with self._lock:
            for record in self.history:
                if record.id == record_id:
                    self.generated_code = record.code
                    self.error = None
                    return True
        return False

    def snapshot(self) -> ControllerSnapshot:
        with self._lock:
            return ControllerSnapshot(
                state=self.state,
                user_id=self.user_id,
                history=tuple(self.history),
                history_notice=self.history_notice,
                generated_code=self.generated_code,
                error=self.error,
                auth_error=self.auth_error,
                is_busy=self.is_busy,
                is_login_mode=self.is_login_mode,
                component=self.component,
                description=self.description,
            )
