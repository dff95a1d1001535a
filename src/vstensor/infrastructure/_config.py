"""
Environment-driven configuration switches.

Switches are read at call time so tests and embedding applications can flip
them without reloading modules. Explicit keyword arguments passed to the
public functions always take precedence over the environment.
"""

from __future__ import annotations

import os
from typing import Optional

STRICT_METADATA_KEYS_ENV = "VSTENSOR_STRICT_METADATA_KEYS"

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def strict_metadata_keys(override: Optional[bool] = None) -> bool:
    """
    Resolve whether unknown metadata JSON keys should be rejected.

    Parameters
    ----------
    override : Optional[bool], optional
        Explicit setting. When not None it is returned unchanged.

    Returns
    -------
    bool
        The effective setting; defaults to False when
        `VSTENSOR_STRICT_METADATA_KEYS` is unset.
    """
    if override is not None:
        return bool(override)
    return _env_flag(STRICT_METADATA_KEYS_ENV)
