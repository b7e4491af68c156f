"""
NETA Ops — Report Lifecycle Service
Blueprint registry and shared request helpers.
"""

from flask import request

from neta_ops.core.exceptions import ValidationError


def json_body() -> dict:
    """Return the JSON request body as a dict; an empty body is ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def optional_int(data: dict, key: str) -> int | None:
    """Read an optional integer field (e.g. expected_version, timeout_ms)."""
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={key: "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer", details={key: "invalid"}) from exc


def optional_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes")
