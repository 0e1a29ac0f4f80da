"""Deterministic fingerprint of the desired account configuration."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from .models import DesiredSpec


def canonical_json(value: Any) -> str:
    """Serialize a value with stable key order and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(desired: DesiredSpec) -> str:
    """Return the SHA-256 hex digest of a DesiredSpec.

    Every field (including labels) contributes, so any change to the
    desired configuration yields a different fingerprint. Label order
    does not matter.
    """
    payload = canonical_json(desired.to_fingerprint_input())
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
