"""SearchAPI - shared search layer for sleuth.

Both the CLI and the MCP server go through this class so caching,
owner scoping, pagination and suggestions behave the same everywhere.
"""

import hashlib
import json
import logging
import time

from .cache import ResultCache, get_cache
from .config import SleuthConfig, get_config
from .models import (
    Message,
    MonthCount,
    ReadCounts,
    SearchAnalytics,
    SearchOptions,
    SearchResult,
    SenderCount,
)
from .operators import OperatorCategory, get_search_operator_help
from .predicates import Predicate, compile_predicates
from .search import ParsedQuery, parse_search_query
from .store import MessageStore, get_store
from .suggest import generate_suggestions

logger = logging.getLogger(__name__)

TOP_SENDERS_LIMIT = 10
MONTHS_LIMIT = 12


class SearchError(Exception):
    """A search could not be executed; callers show a generic retry message."""


def search_cache_key(user_id: str, options: SearchOptions, limit: int) -> str:
    """Cache key for a first-page search.

    Built from the user, raw query and offset, plus a digest of the
    structured filters and page size so pages for different filters
    never collide.
    """
    extras = options.model_dump(mode="json", exclude={"query", "offset", "limit"})
    extras["limit"] = limit
    digest = hashlib.sha256(json.dumps(extras, sort_keys=True).encode()).hexdigest()[:16]
    return f"search:{user_id}:{options.query}:{options.offset}:{digest}"


class SearchAPI:
    """Unified API for sleuth search operations.

    Example:
        api = SearchAPI()
        result = api.search_emails("user-1", SearchOptions(query="from:alice is:unread"))
        for msg in result.messages:
            print(msg.subject)
    """

    def __init__(
        self,
        config: SleuthConfig | None = None,
        store: MessageStore | None = None,
        cache: ResultCache | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._cache = cache

    @property
    def config(self) -> SleuthConfig:
        """Get configuration, loading default if needed."""
        if self._config is None:
            self._config = get_config()
        return self._config

    @property
    def store(self) -> MessageStore:
        """Get message store, opening default if needed."""
        if self._store is None:
            self._store = get_store()
        return self._store

    @property
    def cache(self) -> ResultCache:
        """Get result cache, opening default if needed."""
        if self._cache is None:
            self._cache = get_cache()
        return self._cache

    # =========================================================================
    # Search
    # =========================================================================

    def _page_limit(self, options: SearchOptions) -> int:
        limit = options.limit
        if "limit" not in options.model_fields_set:
            limit = self.config.search.default_limit
        return max(1, min(limit, self.config.search.max_limit))

    def _cache_read(self, key: str) -> tuple[list[Message], int] | None:
        try:
            cached = self.cache.get(key)
        except Exception as e:
            logger.warning(f"Result cache read failed, treating as miss: {e}")
            return None
        if cached is None:
            return None
        try:
            messages = [Message.model_validate(item) for item in cached["messages"]]
            return messages, int(cached["total_count"])
        except Exception as e:
            logger.warning(f"Discarding malformed cached page: {e}")
            return None

    def _cache_write(self, key: str, messages: list[Message], total_count: int) -> None:
        try:
            self.cache.set(
                key,
                {
                    "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
                    "total_count": total_count,
                },
                self.config.search.cache_ttl_seconds,
            )
        except Exception as e:
            logger.warning(f"Result cache write failed: {e}")

    def search_emails(self, user_id: str, options: SearchOptions | None = None) -> SearchResult:
        """Search a user's messages with an operator query and/or structured filters.

        Args:
            user_id: Owner of the messages to search; results never leave this scope
            options: Query string, structured filters and pagination

        Returns:
            SearchResult with the page of messages (newest first), the total
            match count, timing, suggestions (only for empty query results)
            and the parsed query.

        Raises:
            SearchError: If the store could not be queried
        """
        start = time.perf_counter()
        if options is None:
            options = SearchOptions()

        limit = self._page_limit(options)
        cacheable = bool(options.query) and options.offset == 0
        key = search_cache_key(user_id, options, limit) if cacheable else None

        parsed: ParsedQuery | None = None
        if options.query:
            parsed = parse_search_query(options.query)
            logger.debug(f"Parsed search query {options.query!r}: {parsed}")

        cached = self._cache_read(key) if key else None
        if cached is not None:
            logger.debug(f"Cache hit for search: {options.query!r}")
            messages, total_count = cached
            return SearchResult(
                messages=messages,
                total_count=total_count,
                search_time_ms=(time.perf_counter() - start) * 1000,
                suggestions=[],
                parsed_query=parsed,
                from_cache=True,
            )

        predicates: list[Predicate] = compile_predicates(parsed, options, owner_id=user_id)

        try:
            messages = self.store.query(predicates, limit=limit, offset=options.offset)
            total_count = self.store.count(predicates)
        except Exception as e:
            logger.exception(f"Email search error for query {options.query!r}")
            raise SearchError("Search failed") from e

        if key:
            self._cache_write(key, messages, total_count)

        suggestions: list[str] = []
        if not messages and options.query:
            suggestions = generate_suggestions(
                self.store,
                user_id,
                options.query,
                pool_size=self.config.search.suggestion_pool,
                max_suggestions=self.config.search.max_suggestions,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Search completed: {options.query!r} - {len(messages)} results in {elapsed_ms:.1f}ms"
        )

        return SearchResult(
            messages=messages,
            total_count=total_count,
            search_time_ms=elapsed_ms,
            suggestions=suggestions,
            parsed_query=parsed,
        )

    def suggest(self, user_id: str, query: str) -> list[str]:
        """Query suggestions drawn from the user's own senders and subjects."""
        return generate_suggestions(
            self.store,
            user_id,
            query,
            pool_size=self.config.search.suggestion_pool,
            max_suggestions=self.config.search.max_suggestions,
        )

    def get_search_operator_help(self) -> list[OperatorCategory]:
        """Supported operators grouped by category."""
        return get_search_operator_help()

    # =========================================================================
    # Analytics
    # =========================================================================

    def get_search_analytics(self, user_id: str) -> SearchAnalytics:
        """Top senders, monthly volume and read/unread split for a user.

        Raises:
            SearchError: If the store could not be queried
        """
        try:
            senders = self.store.top_senders(user_id, limit=TOP_SENDERS_LIMIT)
            months = self.store.emails_by_month(user_id, limit=MONTHS_LIMIT)
            read, unread = self.store.read_counts(user_id)
        except Exception as e:
            logger.exception(f"Error getting search analytics for {user_id!r}")
            raise SearchError("Failed to get analytics") from e

        return SearchAnalytics(
            top_senders=[SenderCount(email=addr, count=n) for addr, n in senders],
            emails_by_month=[MonthCount(month=month, count=n) for month, n in months],
            read_vs_unread=ReadCounts(read=read, unread=unread),
        )

    # =========================================================================
    # Store maintenance
    # =========================================================================

    def load_messages(self, messages: list[Message]) -> int:
        """Write messages into the store. Returns how many were stored."""
        return self.store.store_messages(messages)

    def clear_cache(self) -> int:
        """Drop every cached result page."""
        return self.cache.clear()


# Singleton instance
_api_instance: SearchAPI | None = None


def get_api() -> SearchAPI:
    """Get the singleton SearchAPI instance."""
    global _api_instance
    if _api_instance is None:
        _api_instance = SearchAPI()
    return _api_instance
