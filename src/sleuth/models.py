"""Core data models for sleuth."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from .search import ParsedQuery

SNIPPET_LENGTH = 200


class Address(BaseModel):
    """Email address with optional display name."""

    addr: EmailStr
    name: str = ""

    def __str__(self) -> str:
        if self.name:
            return f"{self.name} <{self.addr}>"
        return self.addr


class Attachment(BaseModel):
    """Attachment metadata (content not stored)."""

    filename: str
    size: int = Field(ge=0, description="Size in bytes")
    content_type: str = "application/octet-stream"


class Message(BaseModel):
    """A single stored email message."""

    message_id: str = Field(description="Unique message ID")
    owner_id: str = Field(description="User that owns this message")
    account_id: str = Field(default="", description="Mail account the message belongs to")
    thread_id: str = Field(default="", description="Conversation/thread ID")
    folder: str = Field(default="INBOX", description="Folder name")

    from_: Address = Field(alias="from", description="Sender address")
    to: list[Address] = Field(default_factory=list)
    cc: list[Address] = Field(default_factory=list)
    bcc: list[Address] = Field(default_factory=list)

    sent_at: datetime
    subject: str = ""

    body_text: str | None = Field(default=None, description="Plain text body")
    body_html: str | None = Field(default=None, description="HTML body")

    is_read: bool = False
    is_starred: bool = False
    is_important: bool = False

    labels: list[str] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    @property
    def attachment_count(self) -> int:
        return len(self.attachments)

    @property
    def snippet(self) -> str:
        text = self.body_text or ""
        if len(text) > SNIPPET_LENGTH:
            return text[:SNIPPET_LENGTH] + "..."
        return text


class SearchOptions(BaseModel):
    """Caller-supplied search request.

    The raw ``query`` is parsed with the operator grammar; the explicit
    fields are compiled alongside it and ANDed with everything the query
    produces.
    """

    query: str | None = None

    from_email: str | None = None
    to_email: str | None = None
    subject: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    has_attachments: bool | None = None
    is_read: bool | None = None
    is_starred: bool | None = None
    account_ids: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)

    limit: int = Field(default=50, description="Page size, clamped into 1..100")
    offset: int = Field(default=0, ge=0)

    @field_validator("limit", mode="before")
    @classmethod
    def clamp_limit(cls, value: Any) -> Any:
        if value is None:
            return 50
        if isinstance(value, int) and not isinstance(value, bool):
            return max(1, min(value, 100))
        return value


class SearchResult(BaseModel):
    """Outcome of a single search call."""

    messages: list[Message] = Field(default_factory=list)
    total_count: int = 0
    search_time_ms: float = 0.0
    suggestions: list[str] = Field(default_factory=list)
    parsed_query: ParsedQuery | None = Field(default=None, description="Echo of the parsed query")
    from_cache: bool = False


class SenderCount(BaseModel):
    email: str
    count: int


class MonthCount(BaseModel):
    month: str = Field(description="YYYY-MM")
    count: int


class ReadCounts(BaseModel):
    read: int = 0
    unread: int = 0


class SearchAnalytics(BaseModel):
    """Per-user mailbox aggregates."""

    top_senders: list[SenderCount] = Field(default_factory=list)
    emails_by_month: list[MonthCount] = Field(default_factory=list)
    read_vs_unread: ReadCounts = Field(default_factory=ReadCounts)


class ExitCode(int, Enum):
    SUCCESS = 0
    NOT_FOUND = 1
    INVALID_INPUT = 2
    SEARCH_FAILED = 3
