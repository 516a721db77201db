"""Standardized API response helpers.

Every IRIS endpoint answers with the same envelope so the dashboard can treat
responses uniformly:

    {"success": true, "data": ..., "meta": {"timestamp": "..."}}
    {"success": false, "error": {"message": ..., "code": ...}, "meta": {...}}
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import jsonify


def _meta(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    meta = {"timestamp": datetime.now(timezone.utc).isoformat()}
    if extra:
        meta.update(extra)
    return meta


def success_response(data: Any = None, meta: Optional[Dict[str, Any]] = None, status_code: int = 200):
    """
    Standard success response.

    Args:
        data: Response payload (dict, list, or None)
        meta: Extra metadata merged next to the timestamp
        status_code: HTTP status code (default 200)

    Returns:
        Tuple of Flask response and status code
    """
    return jsonify({"success": True, "data": data, "meta": _meta(meta)}), status_code


def error_response(
    message: str,
    status_code: int = 500,
    code: str = "INTERNAL_SERVER_ERROR",
    details: Any = None,
):
    """
    Standard error response.

    Args:
        message: Human readable error message
        status_code: HTTP status code (default 500)
        code: Machine readable error code
        details: Optional extra information (validation errors etc.)

    Returns:
        Tuple of Flask response and status code
    """
    error = {"message": message, "code": code}
    if details is not None:
        error["details"] = details
    return jsonify({"success": False, "error": error, "meta": _meta()}), status_code
