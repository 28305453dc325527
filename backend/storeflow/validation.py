from __future__ import annotations

from typing import Any

from flask import jsonify

from .errors import WorkflowError

STATUS_BY_CATEGORY = {
    "validation": 400,
    "missing": 404,
    "conflict": 409,
    "forbidden": 403,
}


class ValidationError(ValueError):
    """400-level input problem."""


def error_response(exc: WorkflowError):
    """Tagged workflow error -> (json, status). The only place categories become HTTP codes."""
    return jsonify(exc.to_dict()), STATUS_BY_CATEGORY.get(exc.category, 400)


def validation_response(exc: ValueError):
    return jsonify({"error": "ValidationError", "message": str(exc), "context": {}}), 400


def require_json(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def require_int(data: dict, key: str, *, required: bool = True) -> int | None:
    """
    Strict integer field: rejects floats, bools and non-numeric strings.
    """
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")
