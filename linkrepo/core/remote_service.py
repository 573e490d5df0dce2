"""
Thin wrapper around the hosted backend's client SDK.

Design overview
---------------
All durable state (groups, subgroups, files) and all authentication
live in a hosted Supabase backend. The ``supabase`` package provides
the client: ``client.auth`` for password sign-in, the current user,
logout and token refresh, and ``client.table(...)`` for the
``select`` / ``insert`` / ``delete`` queries this application needs.
Access is scoped to the signed-in user by server-side policy; the
client never filters by owner itself.

:class:`RemoteDataService` narrows that SDK to the handful of calls
used here, converts the SDK's session objects into plain
:class:`AuthSession` records, and fans auth-state changes out to its own
subscribers. Automatic token refresh on a background timer is disabled;
an expired access token is refreshed by the SDK the next time the
session is read, on the calling (GUI) thread.

Errors
------
Every failure is raised as a :class:`RemoteServiceError` subclass so
that callers only need one ``except`` clause:

* :class:`ConnectionLostError`: the backend could not be reached
  (``httpx`` transport error or timeout, or a retryable auth error).
* :class:`SessionRequiredError`: no session is available, or the
  backend rejected the access token. In the latter case the session is
  discarded and a ``SIGNED_OUT`` event is emitted.
* :class:`AuthError`: sign-in rejected.
* :class:`RemoteServiceError`: any other rejected request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from supabase import (
    AuthApiError,
    AuthRetryableError,
    Client,
    ClientOptions,
    PostgrestAPIError,
    create_client,
)
from supabase import AuthError as SupabaseAuthError

from linkrepo.core.config import DEFAULT_REQUEST_TIMEOUT, BackendConfig

log = logging.getLogger(__name__)

# Auth-state events passed to ``on_auth_state_change`` subscribers.
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

# Table queried by the connectivity check.
CONNECTIVITY_TABLE = "groups"

# PostgREST error codes meaning the access token was not accepted
# (plain "401" is used when the error body was not JSON).
SESSION_REJECTED_CODES = {"401", "PGRST301", "PGRST302", "PGRST303"}


class RemoteServiceError(Exception):
    """A backend request failed or was rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectionLostError(RemoteServiceError):
    """The backend could not be reached."""


class SessionRequiredError(RemoteServiceError):
    """A signed-in session is required but missing or no longer valid."""


class AuthError(RemoteServiceError):
    """Sign-in was rejected by the auth service."""


@dataclass
class AuthUser:
    """The authenticated user as reported by the auth service."""

    id: str
    email: Optional[str] = None

    @classmethod
    def from_sdk(cls, user: Any) -> "AuthUser":
        return cls(id=str(user.id), email=getattr(user, "email", None))


@dataclass
class AuthSession:
    """Tokens for one signed-in session."""

    access_token: str
    refresh_token: Optional[str]
    user: AuthUser

    #: Unix time at which ``access_token`` expires, if known.
    expires_at: Optional[float] = None

    @classmethod
    def from_sdk(cls, session: Any) -> "AuthSession":
        expires_at = getattr(session, "expires_at", None)
        return cls(
            access_token=str(session.access_token),
            refresh_token=getattr(session, "refresh_token", None),
            user=AuthUser.from_sdk(session.user),
            expires_at=float(expires_at) if expires_at is not None else None,
        )


AuthStateCallback = Callable[[str, Optional[AuthSession]], None]


class Subscription:
    """Handle returned by :meth:`RemoteDataService.on_auth_state_change`."""

    def __init__(self, callbacks: List[AuthStateCallback], callback: AuthStateCallback) -> None:
        self._callbacks = callbacks
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._callbacks:
            self._callbacks.remove(self._callback)


def _status_from_code(code: Any) -> Optional[int]:
    """Return ``code`` as an HTTP status when it is one (PostgREST codes are not)."""
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


def _auth_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


class RemoteDataService:
    """
    Client for the hosted auth + table backend.

    Args:
        base_url: Backend base URL, e.g. "https://abcd.supabase.co".
        anon_key: Public API key of the project.
        timeout: Table request timeout in seconds.
        client: Optional pre-built ``supabase.Client`` (mainly for tests).
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: Optional[Client] = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        if client is None:
            client = create_client(
                self._base_url,
                anon_key,
                options=ClientOptions(
                    auto_refresh_token=False,
                    postgrest_client_timeout=timeout,
                ),
            )
        self._client = client
        self._callbacks: List[AuthStateCallback] = []
        # Set when the session was dropped locally (rejected token, failed
        # logout); the SDK may still hold tokens until the next sign-in.
        self._discarded = False
        self._client.auth.on_auth_state_change(self._on_sdk_auth_event)

    @classmethod
    def from_config(cls, cfg: BackendConfig) -> "RemoteDataService":
        if not cfg.is_complete:
            raise ValueError("Backend URL and key must be configured first.")
        return cls(cfg.backend_url, cfg.anon_key, timeout=cfg.request_timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        """Register ``callback(event, session)`` for auth-state changes."""
        self._callbacks.append(callback)
        return Subscription(self._callbacks, callback)

    def get_session(self) -> Optional[AuthSession]:
        """Return the current session, refreshing an expired access token.

        Returns None when signed out, or when the refresh token was
        rejected (in which case ``SIGNED_OUT`` is emitted).

        Raises:
            ConnectionLostError: If a refresh was needed but the backend
                could not be reached.
        """
        if self._discarded:
            return None
        try:
            session = self._client.auth.get_session()
        except (AuthRetryableError, httpx.TransportError) as exc:
            raise ConnectionLostError(f"Backend unreachable: {exc}") from exc
        except SupabaseAuthError as exc:
            log.info("Session refresh rejected: %s", _auth_message(exc))
            self._discard_session()
            return None
        if session is None:
            return None
        return AuthSession.from_sdk(session)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password and make that the current session.

        Raises:
            AuthError: If the credentials are rejected.
            ConnectionLostError: If the backend cannot be reached.
        """
        try:
            response = self._client.auth.sign_in_with_password({"email": email, "password": password})
        except (AuthRetryableError, httpx.TransportError) as exc:
            raise ConnectionLostError(f"Backend unreachable: {exc}") from exc
        except AuthApiError as exc:
            raise AuthError(_auth_message(exc), status_code=getattr(exc, "status", None)) from exc
        except SupabaseAuthError as exc:
            raise AuthError(_auth_message(exc)) from exc
        if response is None or response.session is None:
            raise AuthError("Sign-in failed")
        self._discarded = False
        session = AuthSession.from_sdk(response.session)
        log.info("Signed in as %s", session.user.email or session.user.id)
        return session

    def get_user(self) -> Optional[AuthUser]:
        """Ask the auth service who the current session belongs to.

        Returns None when there is no session or the token is rejected.
        """
        if self.get_session() is None:
            return None
        try:
            response = self._client.auth.get_user()
        except (AuthRetryableError, httpx.TransportError) as exc:
            raise ConnectionLostError(f"Backend unreachable: {exc}") from exc
        except AuthApiError as exc:
            status = getattr(exc, "status", None)
            if status in (401, 403):
                self._discard_session()
                return None
            raise RemoteServiceError(_auth_message(exc), status_code=status) from exc
        except SupabaseAuthError as exc:
            raise RemoteServiceError(_auth_message(exc)) from exc
        if response is None or response.user is None:
            return None
        return AuthUser.from_sdk(response.user)

    def sign_out(self) -> None:
        """End the current session.

        The session is discarded and ``SIGNED_OUT`` emitted even if the
        logout request itself fails; the failure is then re-raised.
        """
        if self.get_session() is None:
            return
        try:
            self._client.auth.sign_out()
        except (AuthRetryableError, httpx.TransportError) as exc:
            self._discard_session()
            raise ConnectionLostError(f"Backend unreachable: {exc}") from exc
        except SupabaseAuthError as exc:
            self._discard_session()
            raise RemoteServiceError(_auth_message(exc)) from exc

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------
    def select(self, table: str, order_by: str = "created_at", ascending: bool = True) -> List[Dict[str, Any]]:
        """Return every row of ``table`` visible to the current user."""
        self._require_session()
        query = self._client.table(table).select("*").order(order_by, desc=not ascending)
        rows = self._execute(query, f"Could not read {table}").data
        if not isinstance(rows, list):
            raise RemoteServiceError(f"Unexpected response reading {table}")
        return rows

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (with id and timestamp)."""
        self._require_session()
        query = self._client.table(table).insert(dict(values))
        rows = self._execute(query, f"Could not insert into {table}").data
        if isinstance(rows, list):
            if not rows:
                raise RemoteServiceError(f"Insert into {table} returned no record")
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise RemoteServiceError(f"Unexpected response inserting into {table}")

    def delete(self, table: str, record_id: str) -> None:
        """Delete the row of ``table`` whose id equals ``record_id``."""
        self._require_session()
        query = self._client.table(table).delete().eq("id", record_id)
        self._execute(query, f"Could not delete from {table}")

    def check_connection(self) -> bool:
        """Check whether the backend is reachable.

        Issues a one-row read. Any answer from the server counts as
        reachable except a 5xx; transport errors and timeouts do not.
        Never raises and never changes the session.
        """
        try:
            self._client.table(CONNECTIVITY_TABLE).select("id").limit(1).execute()
        except PostgrestAPIError as exc:
            status = _status_from_code(exc.code)
            return status is None or status < 500
        except httpx.HTTPError as exc:
            log.info("Connectivity check failed: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require_session(self) -> None:
        if self.get_session() is None:
            raise SessionRequiredError("Not signed in")

    def _execute(self, query: Any, what: str) -> Any:
        """Run a table query, mapping SDK failures onto our errors."""
        try:
            return query.execute()
        except PostgrestAPIError as exc:
            message = exc.message or what
            if str(exc.code) in SESSION_REJECTED_CODES:
                self._discard_session()
                raise SessionRequiredError(message, status_code=401) from exc
            raise RemoteServiceError(message, status_code=_status_from_code(exc.code)) from exc
        except httpx.TransportError as exc:
            raise ConnectionLostError(f"Backend unreachable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"{what}: {exc}") from exc

    def _on_sdk_auth_event(self, event: Any, session: Any) -> None:
        event = str(event)
        if event == SIGNED_IN:
            self._discarded = False
        if session is None or self._discarded:
            self._emit(event, None)
            return
        self._emit(event, AuthSession.from_sdk(session))

    def _discard_session(self) -> None:
        if self._discarded:
            return
        self._discarded = True
        self._emit(SIGNED_OUT, None)

    def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        for callback in list(self._callbacks):
            callback(event, session)
