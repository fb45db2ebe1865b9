"""Email/password and anonymous sessions backed by Firebase Authentication."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from modules.services.subscription import Subscription

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

GENERIC_AUTH_ERROR = "An authentication error occurred."

AUTH_ERROR_MESSAGES: Dict[str, str] = {
    "auth/invalid-email": "Invalid email address.",
    "auth/user-disabled": "This user account has been disabled.",
    "auth/user-not-found": "Invalid email or password.",
    "auth/wrong-password": "Invalid email or password.",
    "auth/invalid-credential": "Invalid email or password.",
    "auth/email-already-in-use": "This email is already in use. Try logging in.",
    "auth/weak-password": "Password should be at least 6 characters.",
}

# Identity Toolkit REST messages -> SDK-style codes
_REST_ERROR_CODES: Dict[str, str] = {
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
    "USER_DISABLED": "auth/user-disabled",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "MISSING_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "ADMIN_ONLY_OPERATION": "auth/admin-restricted-operation",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
}


def describe_auth_error(code: Optional[str]) -> str:
    """Return the user-facing message for an auth error code."""
    return AUTH_ERROR_MESSAGES.get(code or "", GENERIC_AUTH_ERROR)


class AuthError(RuntimeError):
    """Failure reported by the auth provider."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code

    @property
    def user_message(self) -> str:
        return describe_auth_error(self.code)


@dataclass(slots=True, frozen=True)
class AuthUser:
    """Signed-in identity as reported by the provider."""

    uid: str
    is_anonymous: bool
    email: Optional[str] = None


@dataclass(slots=True, frozen=True)
class Session:
    """Immutable snapshot of who is signed in, passed explicitly to writers."""

    user_id: str
    is_anonymous: bool

    @classmethod
    def from_user(cls, user: AuthUser) -> "Session":
        return cls(user_id=user.uid, is_anonymous=user.is_anonymous)

    @property
    def can_save_history(self) -> bool:
        return bool(self.user_id) and not self.is_anonymous


AuthListener = Callable[[Optional[AuthUser]], None]


class AuthService:
    """Thin adapter over the Identity Toolkit REST API.

    Holds the current user for one browser session and notifies listeners,
    in registration order, every time it changes.
    """

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        base_url: str = IDENTITY_TOOLKIT_URL,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._current_user: Optional[AuthUser] = None
        self._listeners: List[Subscription[Optional[AuthUser]]] = []
        self._lock = threading.RLock()

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current_user

    def on_auth_state_changed(
        self,
        callback: AuthListener,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription[Optional[AuthUser]]:
        """Register ``callback`` and immediately deliver the current user to it."""
        subscription: Subscription[Optional[AuthUser]] = Subscription(callback, on_error, name="auth-state")

        def _teardown() -> None:
            with self._lock:
                if subscription in self._listeners:
                    self._listeners.remove(subscription)

        with self._lock:
            self._listeners.append(subscription)
        subscription.open(_teardown)
        subscription.deliver(self._current_user)
        return subscription

    def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._set_user(self._user_from_response(data, is_anonymous=False))

    def create_account(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._set_user(self._user_from_response(data, is_anonymous=False))

    def sign_in_anonymously(self) -> AuthUser:
        data = self._post("accounts:signUp", {"returnSecureToken": True})
        return self._set_user(self._user_from_response(data, is_anonymous=True))

    def sign_out(self) -> None:
        self._set_user(None)

    # Internal helpers ---------------------------------------------------------
    def _set_user(self, user: Optional[AuthUser]) -> Optional[AuthUser]:
        with self._lock:
            self._current_user = user
            listeners = list(self._listeners)
        logger.info("Auth state changed: %s", "signed out" if user is None else f"uid={user.uid}")
        for subscription in listeners:
            subscription.deliver(user)
        return user

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise AuthError("auth/invalid-api-key", "FIREBASE_API_KEY is not configured.")
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._session.post(
                url, params={"key": self.api_key}, json=payload, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise AuthError("auth/network-request-failed", str(exc)) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            raise self._error_from_response(data, response.status_code)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_from_response(data: Any, status_code: int) -> AuthError:
        message = ""
        if isinstance(data, dict):
            error = data.get("error") or {}
            if isinstance(error, dict):
                message = str(error.get("message") or "")
        # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
        key = message.split(":", 1)[0].strip()
        code = _REST_ERROR_CODES.get(key, "auth/internal-error")
        return AuthError(code, message or f"HTTP {status_code}")

    @staticmethod
    def _user_from_response(data: Dict[str, Any], is_anonymous: bool) -> AuthUser:
        uid = data.get("localId")
        if not uid:
            raise AuthError("auth/internal-error", "Auth response did not include a user id.")
        return AuthUser(
            uid=str(uid),
            is_anonymous=is_anonymous,
            email=data.get("email") or None,
        )
