"""Compile parsed queries and explicit options into message predicates.

A predicate set is a list of the frozen dataclasses below; a message
satisfies the set when it satisfies every predicate in it. The variants
are storage-neutral: ``matches`` evaluates one against an in-memory
``Message`` and ``sleuth.store.build_where_clauses`` turns the same set
into SQL.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Union

from .models import Address, Message, SearchOptions
from .search import ParsedQuery

AddressField = Literal["from", "to", "cc", "bcc"]
FlagName = Literal["is_read", "is_starred", "is_important"]

ATTACHMENT_VALUES = frozenset({"attachment", "attachments"})

# is:<value> -> (flag, value the flag must have)
IS_VALUES: dict[str, tuple[FlagName, bool]] = {
    "read": ("is_read", True),
    "unread": ("is_read", False),
    "starred": ("is_starred", True),
    "star": ("is_starred", True),
    "important": ("is_important", True),
}


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def as_utc(moment: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


@dataclass(frozen=True)
class OwnerScope:
    """Message belongs to the given user. Always present in a compiled set."""

    owner_id: str

    def matches(self, msg: Message) -> bool:
        return msg.owner_id == self.owner_id


@dataclass(frozen=True)
class AccountIn:
    account_ids: tuple[str, ...]

    def matches(self, msg: Message) -> bool:
        return msg.account_id in self.account_ids


@dataclass(frozen=True)
class AddressContainsAny:
    """Address field contains any term (or, negated, none of them).

    Only the address itself is matched, never the display name.
    """

    field: AddressField
    terms: tuple[str, ...]
    negated: bool = False

    def _addresses(self, msg: Message) -> list[Address]:
        if self.field == "from":
            return [msg.from_]
        return list(getattr(msg, self.field))

    def matches(self, msg: Message) -> bool:
        hit = any(
            _contains(addr.addr, term)
            for addr in self._addresses(msg)
            for term in self.terms
        )
        return not hit if self.negated else hit


@dataclass(frozen=True)
class SubjectContainsAny:
    terms: tuple[str, ...]
    negated: bool = False

    def matches(self, msg: Message) -> bool:
        hit = any(_contains(msg.subject, term) for term in self.terms)
        return not hit if self.negated else hit


@dataclass(frozen=True)
class FlagEquals:
    flag: FlagName
    value: bool

    def matches(self, msg: Message) -> bool:
        return getattr(msg, self.flag) is self.value


@dataclass(frozen=True)
class AttachmentExists:
    present: bool

    def matches(self, msg: Message) -> bool:
        return msg.has_attachments is self.present


@dataclass(frozen=True)
class AttachmentNameContainsAny:
    terms: tuple[str, ...]

    def matches(self, msg: Message) -> bool:
        return any(
            _contains(att.filename, term) for att in msg.attachments for term in self.terms
        )


@dataclass(frozen=True)
class AttachmentSizeCompare:
    """Some attachment is strictly larger (``>``) or smaller (``<``) than threshold."""

    op: Literal[">", "<"]
    threshold: int

    def matches(self, msg: Message) -> bool:
        if self.op == ">":
            return any(att.size > self.threshold for att in msg.attachments)
        return any(att.size < self.threshold for att in msg.attachments)


@dataclass(frozen=True)
class DateRange:
    """Inclusive bounds on the send timestamp."""

    after: datetime | None = None
    before: datetime | None = None

    def matches(self, msg: Message) -> bool:
        sent = as_utc(msg.sent_at)
        if self.after is not None and sent < as_utc(self.after):
            return False
        if self.before is not None and sent > as_utc(self.before):
            return False
        return True


@dataclass(frozen=True)
class TextContainsAll:
    """Every term appears in the subject, either body or the sender address."""

    terms: tuple[str, ...]

    def matches(self, msg: Message) -> bool:
        return all(
            _contains(msg.subject, term)
            or _contains(msg.body_text, term)
            or _contains(msg.body_html, term)
            or _contains(msg.from_.addr, term)
            for term in self.terms
        )


@dataclass(frozen=True)
class FolderIn:
    folders: tuple[str, ...]

    def matches(self, msg: Message) -> bool:
        return msg.folder.lower() in {f.lower() for f in self.folders}


@dataclass(frozen=True)
class LabelIn:
    labels: tuple[str, ...]

    def matches(self, msg: Message) -> bool:
        wanted = {label.lower() for label in self.labels}
        return any(label.lower() in wanted for label in msg.labels)


Predicate = Union[
    OwnerScope,
    AccountIn,
    AddressContainsAny,
    SubjectContainsAny,
    FlagEquals,
    AttachmentExists,
    AttachmentNameContainsAny,
    AttachmentSizeCompare,
    DateRange,
    TextContainsAll,
    FolderIn,
    LabelIn,
]


def matches_all(predicates: list[Predicate], msg: Message) -> bool:
    """Evaluate a predicate set against a single message."""
    return all(p.matches(msg) for p in predicates)


def _compile_parsed(parsed: ParsedQuery) -> list[Predicate]:
    predicates: list[Predicate] = []
    neg = parsed.negations

    # Address fields
    for field_name, positive, negative in (
        ("from", parsed.from_, neg.from_),
        ("to", parsed.to, neg.to),
        ("cc", parsed.cc, ()),
        ("bcc", parsed.bcc, ()),
    ):
        if positive:
            predicates.append(AddressContainsAny(field_name, positive))
        if negative:
            predicates.append(AddressContainsAny(field_name, negative, negated=True))

    # Subject
    if parsed.subject:
        predicates.append(SubjectContainsAny(parsed.subject))
    if neg.subject:
        predicates.append(SubjectContainsAny(neg.subject, negated=True))

    # has:attachment (other has: values have no effect)
    if any(v.lower() in ATTACHMENT_VALUES for v in parsed.has):
        predicates.append(AttachmentExists(True))
    if any(v.lower() in ATTACHMENT_VALUES for v in neg.has):
        predicates.append(AttachmentExists(False))

    # is:<flag>, negation flips the expected value
    for values, flip in ((parsed.is_, False), (neg.is_, True)):
        for value in values:
            mapped = IS_VALUES.get(value.lower())
            if mapped:
                flag, expected = mapped
                predicates.append(FlagEquals(flag, expected != flip))

    # in:/label:, in:anywhere lifts the folder restriction
    if parsed.in_ and not any(f.lower() == "anywhere" for f in parsed.in_):
        predicates.append(FolderIn(parsed.in_))
    if parsed.label:
        predicates.append(LabelIn(parsed.label))

    # Attachment name and size
    if parsed.filename:
        predicates.append(AttachmentNameContainsAny(parsed.filename))
    if parsed.larger is not None:
        predicates.append(AttachmentSizeCompare(">", parsed.larger))
    if parsed.smaller is not None:
        predicates.append(AttachmentSizeCompare("<", parsed.smaller))

    # Dates (older_than/newer_than already folded in by the parser)
    if parsed.after is not None or parsed.before is not None:
        predicates.append(DateRange(after=parsed.after, before=parsed.before))

    # Free text
    if parsed.text_search:
        predicates.append(TextContainsAll(parsed.text_search))

    return predicates


def _compile_options(options: SearchOptions) -> list[Predicate]:
    predicates: list[Predicate] = []

    if options.from_email:
        predicates.append(AddressContainsAny("from", (options.from_email,)))
    if options.to_email:
        predicates.append(AddressContainsAny("to", (options.to_email,)))
    if options.subject:
        predicates.append(SubjectContainsAny((options.subject,)))
    if options.date_from is not None or options.date_to is not None:
        predicates.append(DateRange(after=options.date_from, before=options.date_to))
    if options.has_attachments is not None:
        predicates.append(AttachmentExists(options.has_attachments))
    if options.is_read is not None:
        predicates.append(FlagEquals("is_read", options.is_read))
    if options.is_starred is not None:
        predicates.append(FlagEquals("is_starred", options.is_starred))
    if options.account_ids:
        predicates.append(AccountIn(tuple(options.account_ids)))
    if options.labels:
        predicates.append(LabelIn(tuple(options.labels)))

    return predicates


def compile_predicates(
    parsed: ParsedQuery | None,
    options: SearchOptions,
    owner_id: str,
) -> list[Predicate]:
    """Build the predicate set for one search.

    The owner scope always comes first, so nothing in the query or the
    options can widen a search beyond the caller's own messages.
    """
    predicates: list[Predicate] = [OwnerScope(owner_id)]
    if parsed is not None:
        predicates.extend(_compile_parsed(parsed))
    predicates.extend(_compile_options(options))
    return predicates
