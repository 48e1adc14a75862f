"""Gmail-style search query parser for sleuth.

Supports operators like:
- from:alice, to:bob, cc:team, bcc:audit
- subject:meeting, subject:"quarterly report"
- has:attachment
- is:read, is:unread, is:starred, is:important
- in:inbox, label:work
- filename:report.pdf, filename:"final draft.docx"
- before:2025-01-31, after:2025/01/01
- older_than:1y, newer_than:7d
- larger:10M, smaller:500K

A leading ``-`` negates from:, to:, subject:, has: and is:. Everything
that is not an operator is free text, matched against subject, bodies and
sender address. Quoted phrases are kept as single terms, even when they
touch a word (``report"q1 plan"``); a quote with no closing partner is an
ordinary character.

The tokenizer is a single left-to-right pass with no shared state, so the
parser is safe to call from any number of threads.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum


class TokenType(Enum):
    """Token types for the search lexer."""

    OPERATOR = "operator"  # from:, -subject:"...", etc.
    QUOTED = "quoted"  # "quoted phrase"
    WORD = "word"  # regular word
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    """A single token from the search query."""

    type: TokenType
    value: str
    operator: str | None = None  # For OPERATOR tokens, the operator name
    negated: bool = False
    raw: str = ""  # Source text the token was read from


# Operators that collect every occurrence into a list
LIST_OPERATORS = (
    "from",
    "to",
    "cc",
    "bcc",
    "subject",
    "has",
    "is",
    "in",
    "label",
    "filename",
)

# Operators that resolve to a single bound
SCALAR_OPERATORS = ("before", "after", "older_than", "newer_than", "larger", "smaller")

OPERATORS = frozenset(LIST_OPERATORS + SCALAR_OPERATORS)

# Operators whose value may be a "quoted phrase"
PHRASE_OPERATORS = frozenset({"subject", "filename"})

# Operators that honour a leading "-"
NEGATABLE_OPERATORS = frozenset({"from", "to", "subject", "has", "is"})

DATE_RE = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
RELATIVE_RE = re.compile(r"(\d+)([dmy])", re.IGNORECASE)
SIZE_RE = re.compile(r"(\d+)([KMG]?)", re.IGNORECASE)

SIZE_MULTIPLIERS = {
    "": 1,
    "K": 1024,
    "M": 1024 * 1024,
    "G": 1024 * 1024 * 1024,
}


@dataclass(frozen=True)
class Negations:
    """Negated operator values (only operators that support negation)."""

    from_: tuple[str, ...] = ()
    to: tuple[str, ...] = ()
    subject: tuple[str, ...] = ()
    has: tuple[str, ...] = ()
    is_: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.from_ or self.to or self.subject or self.has or self.is_)


@dataclass(frozen=True)
class ParsedQuery:
    """Parsed search query with structured operators.

    Python keywords get a trailing underscore: ``from_``, ``is_``, ``in_``.
    """

    # Address operators
    from_: tuple[str, ...] = ()
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()

    subject: tuple[str, ...] = ()
    has: tuple[str, ...] = ()
    is_: tuple[str, ...] = ()
    in_: tuple[str, ...] = ()
    label: tuple[str, ...] = ()
    filename: tuple[str, ...] = ()

    # Date bounds (inclusive), possibly derived from older_than/newer_than
    before: datetime | None = None
    after: datetime | None = None

    # Raw relative tokens, kept for display
    older_than: str | None = None
    newer_than: str | None = None

    # Attachment size thresholds in bytes
    larger: int | None = None
    smaller: int | None = None

    # Free text: quoted phrases first, then words
    text_search: tuple[str, ...] = ()

    negations: Negations = field(default_factory=Negations)

    # Operator tokens that were recognized but could not be applied
    unparsed: tuple[str, ...] = ()

    original_query: str = ""

    def is_empty(self) -> bool:
        """Check if the query has no constraints."""
        return (
            not self.from_
            and not self.to
            and not self.cc
            and not self.bcc
            and not self.subject
            and not self.has
            and not self.is_
            and not self.in_
            and not self.label
            and not self.filename
            and self.before is None
            and self.after is None
            and self.larger is None
            and self.smaller is None
            and not self.text_search
            and self.negations.is_empty()
        )


def tokenize(query: str) -> list[Token]:
    """Tokenize a search query string.

    Handles:
    - Quoted phrases: "hello world"
    - Operators: from:alice, -from:spam, subject:"meeting notes"
    - Regular words: hello world
    """
    tokens: list[Token] = []
    pos = 0
    query_len = len(query)

    while pos < query_len:
        # Skip whitespace
        while pos < query_len and query[pos].isspace():
            pos += 1

        if pos >= query_len:
            break

        # Quoted phrase; an unclosed quote is an ordinary character
        if query[pos] == '"' and query.find('"', pos + 1) != -1:
            start = pos
            end = query.find('"', pos + 1)
            value = query[pos + 1 : end]
            pos = end + 1
            if value:
                tokens.append(Token(type=TokenType.QUOTED, value=value, raw=query[start:pos]))
            continue

        start = pos
        negated = query[pos] == "-"
        name_start = pos + 1 if negated else pos

        # Find the word part (up to : or whitespace)
        pos = name_start
        while pos < query_len and query[pos] != ":" and not query[pos].isspace():
            pos += 1

        op_name = query[name_start:pos].lower()

        if pos < query_len and query[pos] == ":" and op_name in OPERATORS:
            pos += 1  # Skip the colon

            if (
                op_name in PHRASE_OPERATORS
                and pos < query_len
                and query[pos] == '"'
                and query.find('"', pos + 1) != -1
            ):
                # Quoted value: operator:"value"
                end = query.find('"', pos + 1)
                op_value = query[pos + 1 : end]
                pos = end + 1
            else:
                value_start = pos
                while pos < query_len and not query[pos].isspace():
                    pos += 1
                op_value = query[value_start:pos]

            tokens.append(
                Token(
                    type=TokenType.OPERATOR,
                    value=op_value,
                    operator=op_name,
                    negated=negated,
                    raw=query[start:pos],
                )
            )
            continue

        # Not an operator - read the word, stopping where a closed quote starts
        pos = start
        while pos < query_len and not query[pos].isspace():
            if query[pos] == '"' and pos > start and query.find('"', pos + 1) != -1:
                break
            pos += 1
        tokens.append(Token(type=TokenType.WORD, value=query[start:pos], raw=query[start:pos]))

    tokens.append(Token(type=TokenType.EOF, value=""))
    return tokens


def parse_date(date_str: str) -> datetime | None:
    """Parse an absolute YYYY-MM-DD or YYYY/MM/DD date as UTC midnight."""
    match = DATE_RE.fullmatch(date_str.strip())
    if not match:
        return None
    year, month, day = (int(g) for g in match.groups())
    try:
        return datetime(year, month, day, tzinfo=UTC)
    except ValueError:
        return None


def _shift_months(moment: datetime, months: int) -> datetime:
    """Move by whole calendar months, clamping the day to the target month."""
    total = moment.year * 12 + (moment.month - 1) + months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_relative_duration(token: str, now: datetime | None = None) -> datetime | None:
    """Resolve a relative duration like 7d, 2m or 1y to ``now`` minus that span.

    Days are calendar days; months and years use calendar arithmetic
    (Mar 31 minus 1m is Feb 28/29). Returns None if the token is malformed
    or the result falls outside the representable range.
    """
    match = RELATIVE_RE.fullmatch(token.strip())
    if not match:
        return None

    unit = match.group(2).lower()
    if now is None:
        now = datetime.now(UTC)

    try:
        amount = int(match.group(1))
        if unit == "d":
            return now - timedelta(days=amount)
        if unit == "m":
            return _shift_months(now, -amount)
        return _shift_months(now, -12 * amount)
    except (ValueError, OverflowError):
        return None


def resolve_byte_size(token: str) -> int | None:
    """Resolve a size like 500, 10K, 5M or 1G to bytes (binary multiples)."""
    match = SIZE_RE.fullmatch(token.strip())
    if not match:
        return None
    try:
        amount = int(match.group(1))
    except ValueError:
        # Beyond the interpreter's integer string conversion limit
        return None
    return amount * SIZE_MULTIPLIERS[match.group(2).upper()]


class _QueryBuilder:
    """Mutable accumulator used while walking the token stream."""

    def __init__(self, query: str, now: datetime) -> None:
        self.query = query
        self.now = now
        self.lists: dict[str, list[str]] = {name: [] for name in LIST_OPERATORS}
        self.negated: dict[str, list[str]] = {name: [] for name in NEGATABLE_OPERATORS}
        self.before: datetime | None = None
        self.after: datetime | None = None
        self.older_than: str | None = None
        self.newer_than: str | None = None
        self.larger: int | None = None
        self.smaller: int | None = None
        self.phrases: list[str] = []
        self.words: list[str] = []
        self.unparsed: list[str] = []

    def add_value(self, operator: str, value: str, negated: bool) -> None:
        # Last occurrence wins when a value shows up both plain and negated
        target = self.negated[operator] if negated else self.lists[operator]
        if operator in NEGATABLE_OPERATORS:
            other = self.lists[operator] if negated else self.negated[operator]
            if value in other:
                other.remove(value)
        if value not in target:
            target.append(value)

    def tighten_before(self, bound: datetime) -> None:
        if self.before is None or bound < self.before:
            self.before = bound

    def tighten_after(self, bound: datetime) -> None:
        if self.after is None or bound > self.after:
            self.after = bound

    def apply(self, token: Token) -> None:
        op = token.operator
        value = token.value

        if token.negated and op not in NEGATABLE_OPERATORS:
            self.unparsed.append(token.raw)
            return

        if not value:
            self.unparsed.append(token.raw)
            return

        if op in LIST_OPERATORS:
            self.add_value(op, value, token.negated)

        elif op in ("before", "after"):
            date = parse_date(value)
            if date is None:
                self.unparsed.append(token.raw)
            elif op == "before":
                self.tighten_before(date)
            else:
                self.tighten_after(date)

        elif op in ("older_than", "newer_than"):
            bound = resolve_relative_duration(value, now=self.now)
            if bound is None:
                self.unparsed.append(token.raw)
            elif op == "older_than":
                self.older_than = value
                self.tighten_before(bound)
            else:
                self.newer_than = value
                self.tighten_after(bound)

        elif op in ("larger", "smaller"):
            size = resolve_byte_size(value)
            if size is None:
                self.unparsed.append(token.raw)
            elif op == "larger":
                self.larger = size if self.larger is None else max(self.larger, size)
            else:
                self.smaller = size if self.smaller is None else min(self.smaller, size)

    def build(self) -> ParsedQuery:
        return ParsedQuery(
            from_=tuple(self.lists["from"]),
            to=tuple(self.lists["to"]),
            cc=tuple(self.lists["cc"]),
            bcc=tuple(self.lists["bcc"]),
            subject=tuple(self.lists["subject"]),
            has=tuple(self.lists["has"]),
            is_=tuple(self.lists["is"]),
            in_=tuple(self.lists["in"]),
            label=tuple(self.lists["label"]),
            filename=tuple(self.lists["filename"]),
            before=self.before,
            after=self.after,
            older_than=self.older_than,
            newer_than=self.newer_than,
            larger=self.larger,
            smaller=self.smaller,
            text_search=tuple(self.phrases + self.words),
            negations=Negations(
                from_=tuple(self.negated["from"]),
                to=tuple(self.negated["to"]),
                subject=tuple(self.negated["subject"]),
                has=tuple(self.negated["has"]),
                is_=tuple(self.negated["is"]),
            ),
            unparsed=tuple(self.unparsed),
            original_query=self.query,
        )


def parse_search_query(query: str, now: datetime | None = None) -> ParsedQuery:
    """Parse a search query string into a ParsedQuery.

    Never raises: anything that is not an operator becomes free text, and
    operators with unusable values are collected in ``unparsed``.

    Examples:
        parse_search_query("from:alice -subject:spam")
        parse_search_query('subject:"quarterly report" is:unread')
        parse_search_query("has:attachment larger:10M newer_than:7d")
    """
    if now is None:
        now = datetime.now(UTC)

    builder = _QueryBuilder(query, now)

    for token in tokenize(query):
        if token.type == TokenType.EOF:
            break
        if token.type == TokenType.QUOTED:
            builder.phrases.append(token.value)
        elif token.type == TokenType.WORD:
            builder.words.append(token.value)
        elif token.type == TokenType.OPERATOR:
            builder.apply(token)

    return builder.build()
