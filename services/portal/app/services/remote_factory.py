from __future__ import annotations

import os

from services.portal.app.services.remote_base import RemoteBackend

_BACKENDS: dict[str, RemoteBackend] = {}


def get_remote_backend() -> RemoteBackend:
    """Return the process-wide backend selected by PORTAL_REMOTE_BACKEND.

    One instance per mode is kept so table subscriptions outlive a single request.
    """

    mode = os.getenv("PORTAL_REMOTE_BACKEND", "sql").strip().lower()

    backend = _BACKENDS.get(mode)
    if backend is not None:
        return backend

    if mode == "sql":
        from services.portal.app.services.remote_sql import SqlRemoteBackend

        backend = SqlRemoteBackend()
    elif mode == "mock":
        from services.portal.app.services.remote_mock import MockRemoteBackend

        backend = MockRemoteBackend()
    else:
        raise ValueError(f"Unknown PORTAL_REMOTE_BACKEND={mode!r}. Expected sql or mock.")

    _BACKENDS[mode] = backend
    return backend


def reset_remote_backends() -> None:
    _BACKENDS.clear()
