"""Normalization helpers.

Centralizes lenient parsing of loosely-typed device documents.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pymyozen.exceptions import MyozenDecodeError


def load_document(raw: bytes | bytearray | str | Mapping[str, Any]) -> dict[str, Any]:
    """Parse a structured payload into a JSON object.

    Raises :class:`MyozenDecodeError` when the payload is not a JSON object.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        parsed = json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise MyozenDecodeError(f"payload is not valid JSON: {exc}", reason="invalid_json") from exc
    if not isinstance(parsed, dict):
        raise MyozenDecodeError("payload is not a JSON object", reason="not_object")
    return parsed


def normalize_type_field(document: dict[str, Any]) -> dict[str, Any]:
    """Lower-case the ``type`` discriminator (``"EMG"`` → ``"emg"``)."""
    kind = document.get("type")
    if isinstance(kind, str):
        return {**document, "type": kind.strip().lower()}
    return document
