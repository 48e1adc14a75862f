"""Shared fixtures: temporary stores and a small seeded mailbox."""

from datetime import UTC, datetime

import pytest

from sleuth.api import SearchAPI
from sleuth.cache import ResultCache
from sleuth.config import SleuthConfig
from sleuth.models import Address, Attachment, Message
from sleuth.store import MessageStore

MB = 1024 * 1024


def _build_message(
    message_id: str,
    owner_id: str = "u1",
    sender: str = "alice@x.com",
    sender_name: str = "",
    sent_at: datetime | None = None,
    **kwargs,
) -> Message:
    return Message(
        message_id=message_id,
        owner_id=owner_id,
        **{"from": Address(addr=sender, name=sender_name)},
        sent_at=sent_at or datetime(2025, 1, 1, tzinfo=UTC),
        **kwargs,
    )


@pytest.fixture
def make_message():
    """Factory for messages with sensible defaults."""
    return _build_message


@pytest.fixture
def store(tmp_path):
    """Create a message store with a temporary database."""
    return MessageStore(tmp_path / "messages.db")


@pytest.fixture
def result_cache(tmp_path):
    """Create a result cache with a temporary database."""
    return ResultCache(tmp_path / "cache.db")


@pytest.fixture
def mailbox(store):
    """Seed the store with three messages for u1 and one for u2.

    a: alice -> me, unread, 2MB report.pdf, label Work       (2025-01-10)
    b: bob, read, starred, no attachments                    (2025-01-12)
    c: carol, cc team, read, 100 byte small.txt, Promotions  (2025-01-05)
    d: alice, owned by u2, unread, 5MB attachment            (2025-01-11)
    """
    messages = {
        "a": _build_message(
            "a",
            account_id="acc1",
            sender_name="Alice Smith",
            to=[Address(addr="me@x.com")],
            subject="Quarterly report",
            body_text="numbers attached",
            sent_at=datetime(2025, 1, 10, 9, 0, tzinfo=UTC),
            attachments=[Attachment(filename="report.pdf", size=2 * MB, content_type="application/pdf")],
            labels=["Work"],
        ),
        "b": _build_message(
            "b",
            account_id="acc1",
            sender="bob@x.com",
            subject="Lunch?",
            body_text="pizza at noon",
            sent_at=datetime(2025, 1, 12, 12, 0, tzinfo=UTC),
            is_read=True,
            is_starred=True,
        ),
        "c": _build_message(
            "c",
            account_id="acc2",
            sender="carol@y.org",
            cc=[Address(addr="team@x.com", name="Team")],
            subject="Newsletter 50% off",
            body_html="<p>sale_now</p>",
            sent_at=datetime(2025, 1, 5, 8, 30, tzinfo=UTC),
            is_read=True,
            folder="Promotions",
            attachments=[Attachment(filename="small.txt", size=100, content_type="text/plain")],
        ),
        "d": _build_message(
            "d",
            owner_id="u2",
            account_id="acc3",
            subject="Quarterly report",
            sent_at=datetime(2025, 1, 11, tzinfo=UTC),
            attachments=[Attachment(filename="big.zip", size=5 * MB)],
        ),
    }
    store.store_messages(messages.values())
    return messages


@pytest.fixture
def api(store, result_cache):
    """Create a SearchAPI over the temporary store and cache."""
    return SearchAPI(config=SleuthConfig(default_user="u1"), store=store, cache=result_cache)
