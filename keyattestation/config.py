"""Environment driven settings for the key attestation decoder."""
from __future__ import annotations

import os
from typing import Optional

CHECK_CHAIN_ORDER_ENV = "KEY_ATTESTATION_CHECK_CHAIN_ORDER"
LOG_LEVEL_ENV = "KEY_ATTESTATION_LOG_LEVEL"

_DEFAULT_LOG_LEVEL = "WARNING"


def _env_flag(name: str) -> Optional[bool]:
    """Return ``True`` or ``False`` when the named env var is explicitly set."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return None

    normalised = raw_value.strip().lower()
    if normalised in {"", "0", "false", "off", "no"}:
        return False
    return True


def check_chain_order() -> bool:
    """Whether chains must be verified as leaf first, root last before scanning."""

    flag = _env_flag(CHECK_CHAIN_ORDER_ENV)
    return True if flag is None else flag


def log_level() -> str:
    raw_value = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    return raw_value or _DEFAULT_LOG_LEVEL
