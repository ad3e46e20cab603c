"""
Fabtrack: manufacturing project tracker
Blueprint registry and shared request helpers.
"""

from flask import request


def current_user_id():
    """Acting user from the X-User-Id header (None when absent or malformed).

    Authentication happens upstream; the header carries the resolved user.
    """
    raw = request.headers.get("X-User-Id", "")
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def page_args(default_size=20):
    """(page, page_size) from the query string; services clamp the values."""
    return (
        request.args.get("page", 1, type=int),
        request.args.get("page_size", default_size, type=int),
    )
