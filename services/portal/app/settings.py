from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta

_TRUE = {"1", "true", "yes", "y"}


def env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE


def pending_action_ttl() -> timedelta:
    """How long a pending action survives before it is discarded unreplayed.

    Reads PORTAL_PENDING_TTL_HOURS on every call so tests can override it.
    """

    raw = os.getenv("PORTAL_PENDING_TTL_HOURS", "24").strip()
    try:
        hours = float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid PORTAL_PENDING_TTL_HOURS={raw!r}. Expected a number.") from e

    if hours <= 0:
        raise ValueError(f"Invalid PORTAL_PENDING_TTL_HOURS={raw!r}. Must be positive.")
    return timedelta(hours=hours)


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
