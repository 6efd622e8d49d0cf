"""Prefixed, time-ordered identifiers for records that clients see."""

from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits


def _suffix(length: int = 7) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def new_id(prefix: str) -> str:
    """Return an id like ``evt_1717000000000_k3j9x0a``."""
    return f"{prefix}_{int(time.time() * 1000)}_{_suffix()}"


def new_event_id() -> str:
    return new_id("evt")


def new_recurrence_group_id() -> str:
    return new_id("rgrp")
