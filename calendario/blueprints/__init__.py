"""
Client Milestone Calendar
Blueprint registry helpers.
"""

from flask import request


def page_args(default_limit=20, max_limit=200):
    """Read page/limit query params.

    Query params:
        page   — 1-based page number (default 1)
        limit  — rows per page (default default_limit, capped at max_limit)

    Returns:
        (page, limit)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    return page, max(limit, 1)
