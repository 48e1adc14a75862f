"""Reference catalog of supported search operators, for display."""

from pydantic import BaseModel


class OperatorHelp(BaseModel):
    operator: str
    description: str
    example: str


class OperatorCategory(BaseModel):
    category: str
    operators: list[OperatorHelp]


_CATALOG: list[dict] = [
    {
        "category": "From/To/Subject",
        "operators": [
            {"operator": "from:", "description": "Search for emails from a specific sender", "example": "from:john@example.com"},
            {"operator": "to:", "description": "Search for emails sent to someone", "example": "to:jane@example.com"},
            {"operator": "subject:", "description": "Search in subject line", "example": "subject:meeting"},
            {"operator": "cc:", "description": "Search for emails CC'd to someone", "example": "cc:team@example.com"},
        ],
    },
    {
        "category": "Status",
        "operators": [
            {"operator": "is:read", "description": "Search read emails", "example": "is:read from:boss"},
            {"operator": "is:unread", "description": "Search unread emails", "example": "is:unread"},
            {"operator": "is:starred", "description": "Search starred emails", "example": "is:starred"},
            {"operator": "is:important", "description": "Search important emails", "example": "is:important"},
        ],
    },
    {
        "category": "Attachments",
        "operators": [
            {"operator": "has:attachment", "description": "Search emails with attachments", "example": "has:attachment from:client"},
            {"operator": "filename:", "description": "Search by attachment name", "example": "filename:report.pdf"},
            {"operator": "larger:", "description": "Emails with attachments larger than size", "example": "larger:10M"},
            {"operator": "smaller:", "description": "Emails with attachments smaller than size", "example": "smaller:1M"},
        ],
    },
    {
        "category": "Date",
        "operators": [
            {"operator": "after:", "description": "Search emails after a date", "example": "after:2024-01-01"},
            {"operator": "before:", "description": "Search emails before a date", "example": "before:2024-12-31"},
            {"operator": "newer_than:", "description": "Newer than time period", "example": "newer_than:7d"},
            {"operator": "older_than:", "description": "Older than time period", "example": "older_than:1m"},
        ],
    },
    {
        "category": "Negation",
        "operators": [
            {"operator": "-from:", "description": "Exclude sender", "example": "-from:spam@example.com"},
            {"operator": "-subject:", "description": "Exclude subject", "example": "-subject:newsletter"},
            {"operator": "-has:attachment", "description": "Without attachments", "example": "-has:attachment"},
        ],
    },
]


def get_search_operator_help() -> list[OperatorCategory]:
    """Supported operators grouped by category. Fresh objects on every call."""
    return [OperatorCategory.model_validate(entry) for entry in _CATALOG]
