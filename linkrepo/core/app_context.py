from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from linkrepo.core.remote_service import AuthSession


@dataclass
class AppContext:
    """
    Process-wide session and connectivity state.

    One instance is created at startup and handed to every component
    that needs it. Only the session guard writes ``session`` and
    ``user_id``; ``is_connected`` is written by the guard and by the
    connectivity re-check after a failed operation. Every store
    operation reads ``is_connected`` (and, for inserts, ``user_id``) as
    a precondition.
    """

    #: Current backend session, or None when signed out.
    session: Optional[AuthSession] = None

    #: Id of the signed-in user, once resolved.
    user_id: Optional[str] = None

    #: Result of the most recent connectivity check. Starts optimistic.
    is_connected: bool = True

    #: Sticky error message shown inline until the next success.
    error: Optional[str] = None

    #: True until the first load attempt finishes.
    is_loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user_id is not None

    def clear_session(self) -> None:
        """Forget the session and user after a logout."""
        self.session = None
        self.user_id = None
