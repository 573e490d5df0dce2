"""
Session tracking and implicit logout.

The guard owns the authentication side of :class:`AppContext`:

* On startup :meth:`SessionGuard.resolve` asks the backend for the
  current session and user, checks connectivity, and fills in
  ``context.session`` / ``context.user_id``.
* It subscribes to the backend client's auth-state notifications; any
  transition to "no session" clears the context and reports
  "logged out" to the view.
* When the ``sign_out_on_hide`` policy is on, hiding the main window or
  quitting the application ends the session. Users who merely minimize
  the window are signed out too; ``sign_out_on_hide`` in ``config.json``
  turns this off.

The guard has no Qt dependency; the main window forwards window-state
and quit events to :meth:`handle_visibility_change` and
:meth:`handle_unload`.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from linkrepo.core.app_context import AppContext
from linkrepo.core.remote_service import (
    AuthSession,
    RemoteDataService,
    RemoteServiceError,
    Subscription,
)

log = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = "Database connection error. Please reload."
INIT_ERROR_MESSAGE = "Could not initialize the application"


class SessionGuard:
    """
    Keep ``context`` in step with the backend session.

    Args:
        service: Backend client.
        context: Shared application context.
        on_logged_out: Called (without arguments) whenever the user is
            found to be signed out. Reported once per signed-in period.
        sign_out_on_hide: Whether hide/quit ends the session.
    """

    def __init__(
        self,
        service: RemoteDataService,
        context: AppContext,
        on_logged_out: Callable[[], None],
        sign_out_on_hide: bool = True,
    ) -> None:
        self._service = service
        self._context = context
        self._on_logged_out = on_logged_out
        self._sign_out_on_hide = sign_out_on_hide
        self._subscription: Optional[Subscription] = None
        self._logout_reported = False

    @property
    def sign_out_on_hide(self) -> bool:
        return self._sign_out_on_hide

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> bool:
        """Subscribe to auth-state changes and resolve the session."""
        if self._subscription is None:
            self._subscription = self._service.on_auth_state_change(self._on_auth_state_change)
        return self.resolve()

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def resolve(self) -> bool:
        """
        Resolve the current session and user into the context.

        Returns:
            True when a signed-in user was resolved and the backend is
            reachable. False otherwise; in the unreachable case the user
            is *not* logged out, only a sticky error is set.
        """
        try:
            session = self._service.get_session()
            if session is None:
                self._report_logged_out()
                return False
            self._context.session = session

            connected = self._service.check_connection()
            self._context.is_connected = connected
            if not connected:
                self._context.error = CONNECTION_ERROR_MESSAGE
                return False

            user = self._service.get_user()
            if user is None:
                self._report_logged_out()
                return False
        except RemoteServiceError as exc:
            log.warning("Error initializing session: %s", exc)
            self._context.error = INIT_ERROR_MESSAGE
            self._report_logged_out()
            return False

        self._context.user_id = user.id
        self._logout_reported = False
        return True

    # ------------------------------------------------------------------
    # Implicit logout triggers
    # ------------------------------------------------------------------
    def handle_visibility_change(self, hidden: bool) -> None:
        """Sign out when the window becomes hidden, if the policy says so."""
        if hidden and self._sign_out_on_hide:
            log.info("Window hidden; signing out")
            self._sign_out()

    def handle_unload(self) -> None:
        """Sign out when the application is about to quit, if the policy says so."""
        if self._sign_out_on_hide:
            self._sign_out()

    def sign_out(self) -> None:
        """Explicit user-requested logout."""
        self._sign_out()
        # The client emits SIGNED_OUT only if it still held a session.
        self._context.clear_session()
        self._report_logged_out()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _sign_out(self) -> None:
        try:
            self._service.sign_out()
        except RemoteServiceError as exc:
            # The client drops the local session regardless.
            log.warning("Error signing out: %s", exc)

    def _on_auth_state_change(self, event: str, session: Optional[AuthSession]) -> None:
        log.debug("Auth state changed: %s", event)
        if session is None:
            self._context.clear_session()
            self._report_logged_out()
            return
        self._context.session = session
        if session.user is not None:
            self._context.user_id = session.user.id
        self._logout_reported = False

    def _report_logged_out(self) -> None:
        if self._logout_reported:
            return
        self._logout_reported = True
        self._on_logged_out()
