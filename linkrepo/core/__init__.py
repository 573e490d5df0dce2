from linkrepo.core.app_context import AppContext
from linkrepo.core.config import get_backend_config, set_backend
from linkrepo.core.hierarchy_store import HierarchyStore
from linkrepo.core.remote_service import (
    AuthError,
    ConnectionLostError,
    RemoteDataService,
    RemoteServiceError,
    SessionRequiredError,
)
from linkrepo.core.session_guard import SessionGuard

__all__ = [
    "AppContext",
    "AuthError",
    "ConnectionLostError",
    "HierarchyStore",
    "RemoteDataService",
    "RemoteServiceError",
    "SessionGuard",
    "SessionRequiredError",
    "get_backend_config",
    "set_backend",
]
