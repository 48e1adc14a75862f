"""MCP Server for sleuth - Model Context Protocol integration for LLM agents."""

import json
from datetime import datetime
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from .api import SearchError, get_api
from .config import ensure_dirs, get_config
from .models import SearchOptions

# Create the MCP server
mcp = FastMCP(name="sleuth")


def _resolve_user(user: str | None) -> str:
    return get_config().get_user(user)


# ============================================================================
# Tools
# ============================================================================


@mcp.tool()
def sleuth_search(
    query: str = "",
    user: str | None = None,
    from_email: str | None = None,
    to_email: str | None = None,
    subject: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    has_attachments: bool | None = None,
    is_read: bool | None = None,
    is_starred: bool | None = None,
    account_ids: list[str] | None = None,
    labels: list[str] | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    """Search email with Gmail-style operators.

    Supports operators like from:alice, -from:spam, subject:"quarterly report",
    has:attachment, is:unread, is:starred, filename:report.pdf, larger:10M,
    after:2025-01-01, newer_than:7d. Free words match subject, body and sender.

    Args:
        query: Search query (operators and free text)
        user: User to search as (uses configured default_user if not specified)
        from_email, to_email, subject: Structured filters, ANDed with the query
        date_from, date_to: Inclusive send-time bounds
        has_attachments, is_read, is_starred: Structured boolean filters
        account_ids: Restrict to these accounts
        labels: Restrict to messages carrying any of these labels
        limit: Maximum messages to return (max 100)
        offset: Pagination offset

    Returns:
        Dictionary with messages, total_count, suggestions and the parsed query
    """
    ensure_dirs()

    try:
        user_id = _resolve_user(user)
        options = SearchOptions(
            query=query or None,
            from_email=from_email,
            to_email=to_email,
            subject=subject,
            date_from=date_from,
            date_to=date_to,
            has_attachments=has_attachments,
            is_read=is_read,
            is_starred=is_starred,
            account_ids=account_ids or [],
            labels=labels or [],
            limit=limit,
            offset=offset,
        )
    except (ValueError, ValidationError) as e:
        return {"error": str(e)}

    try:
        result = get_api().search_emails(user_id, options)
    except SearchError as e:
        return {"error": f"{e}, try again."}

    return result.model_dump(mode="json", by_alias=True)


@mcp.tool()
def sleuth_operators() -> list[dict[str, Any]]:
    """List supported search operators, grouped by category, with examples."""
    return [c.model_dump() for c in get_api().get_search_operator_help()]


@mcp.tool()
def sleuth_analytics(user: str | None = None) -> dict[str, Any]:
    """Get top senders, monthly message counts and read/unread totals.

    Args:
        user: User to report on (uses configured default_user if not specified)
    """
    ensure_dirs()

    try:
        user_id = _resolve_user(user)
        stats = get_api().get_search_analytics(user_id)
    except (ValueError, SearchError) as e:
        return {"error": str(e)}

    return stats.model_dump()


# ============================================================================
# Resources
# ============================================================================


@mcp.resource("sleuth://operators")
def resource_operators() -> str:
    """Search operator reference as JSON."""
    return json.dumps(sleuth_operators(), indent=2)


# ============================================================================
# Server Entry Point
# ============================================================================


def run_server() -> None:
    """Run the MCP server."""
    mcp.run()
