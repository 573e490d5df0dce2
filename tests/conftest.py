"""
Shared pytest fixtures for the linkrepo test suite.

Provides an in-memory stand-in for the hosted backend
(:class:`FakeRemoteService`), a signed-in :class:`AppContext`, a
:class:`HierarchyStore` wired to both, and a per-test bootstrap
directory so that no test touches ``~/.linkrepo``.
"""

import os

# Qt widgets are created without a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from linkrepo.core import config
from linkrepo.core.app_context import AppContext
from linkrepo.core.hierarchy_store import HierarchyStore
from linkrepo.core.remote_service import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthSession,
    AuthUser,
    RemoteServiceError,
    Subscription,
)

USER_ID = "user-1"


class FakeRemoteService:
    """
    In-memory backend with the same surface as ``RemoteDataService``.

    Rows get sequential ids and increasing ``created_at`` values. Set
    ``fail_on`` to a set of operation names ("select", "insert",
    "delete") to make those calls raise, and ``connection_ok`` to the
    value the connectivity check should report. Every call is recorded
    in ``calls``.
    """

    base_url = "https://backend.test"

    def __init__(self):
        self.tables = {"groups": [], "subgroups": [], "files": []}
        self.calls = []
        self.fail_on = set()
        self.connection_ok = True
        self.session = None
        self.user = None
        self._callbacks = []
        self._counter = 0

    # Auth -------------------------------------------------------------
    def on_auth_state_change(self, callback):
        self._callbacks.append(callback)
        return Subscription(self._callbacks, callback)

    def sign_in(self, user_id=USER_ID, email="someone@example.com"):
        user = AuthUser(id=user_id, email=email)
        self.user = user
        self.session = AuthSession(access_token="token", refresh_token="refresh", user=user)
        self.emit(SIGNED_IN, self.session)
        return self.session

    def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in_with_password", email))
        return self.sign_in(email=email)

    def get_session(self):
        self.calls.append(("get_session",))
        return self.session

    def get_user(self):
        self.calls.append(("get_user",))
        if self.session is None:
            return None
        return self.user

    def sign_out(self):
        self.calls.append(("sign_out",))
        if self.session is None:
            return
        self.session = None
        self.emit(SIGNED_OUT, None)

    def emit(self, event, session):
        for callback in list(self._callbacks):
            callback(event, session)

    # Tables -----------------------------------------------------------
    def select(self, table, order_by="created_at", ascending=True):
        self.calls.append(("select", table))
        if "select" in self.fail_on:
            raise RemoteServiceError(f"Could not read {table}")
        return [dict(row) for row in self.tables[table]]

    def insert(self, table, values):
        self.calls.append(("insert", table, dict(values)))
        if "insert" in self.fail_on:
            raise RemoteServiceError(f"Could not insert into {table}")
        self._counter += 1
        row = dict(values)
        row["id"] = f"{table}-{self._counter}"
        row["created_at"] = f"2024-01-01T00:00:{self._counter:02d}Z"
        self.tables[table].append(row)
        return dict(row)

    def delete(self, table, record_id):
        self.calls.append(("delete", table, record_id))
        if "delete" in self.fail_on:
            raise RemoteServiceError(f"Could not delete from {table}")
        self.tables[table] = [r for r in self.tables[table] if r["id"] != record_id]
        # Cascade the way the backend's foreign keys do.
        if table == "groups":
            gone = {r["id"] for r in self.tables["subgroups"] if r["group_id"] == record_id}
            self.tables["subgroups"] = [r for r in self.tables["subgroups"] if r["id"] not in gone]
            self.tables["files"] = [r for r in self.tables["files"] if r["subgroup_id"] not in gone]
        elif table == "subgroups":
            self.tables["files"] = [r for r in self.tables["files"] if r["subgroup_id"] != record_id]

    def check_connection(self):
        self.calls.append(("check_connection",))
        return self.connection_ok

    # Helpers ----------------------------------------------------------
    def remote_calls(self):
        """Calls that would reach the backend's tables."""
        return [c for c in self.calls if c[0] in ("select", "insert", "delete")]


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    """Point the bootstrap directory at a temporary path."""
    bootstrap = tmp_path / ".linkrepo"
    monkeypatch.setattr(config, "get_bootstrap_dir", lambda: bootstrap)
    monkeypatch.delenv(config.ENV_BACKEND_URL, raising=False)
    monkeypatch.delenv(config.ENV_ANON_KEY, raising=False)
    return bootstrap


@pytest.fixture
def service():
    fake = FakeRemoteService()
    fake.sign_in()
    return fake


@pytest.fixture
def context(service):
    return AppContext(session=service.session, user_id=USER_ID)


@pytest.fixture
def messages():
    """List collecting ``(level, message)`` notifications."""
    return []


@pytest.fixture
def store(service, context, messages):
    return HierarchyStore(service, context, notifier=lambda level, msg: messages.append((level, msg)))
