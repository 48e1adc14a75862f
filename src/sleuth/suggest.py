"""Alternative query suggestions for searches that found nothing."""

import logging

from .store import MessageStore

logger = logging.getLogger(__name__)


def generate_suggestions(
    store: MessageStore,
    user_id: str,
    query: str,
    pool_size: int = 5,
    max_suggestions: int = 5,
) -> list[str]:
    """Suggest queries built from the user's most frequent senders and subjects.

    Senders come first, then subjects, then generic operator rewrites of a
    plain-text query. Never raises; failures yield an empty list.
    """
    try:
        needle = query.lower()
        suggestions: list[str] = []

        for address, _ in store.top_senders(user_id, limit=pool_size):
            if needle in address.lower():
                suggestions.append(f"from:{address}")

        for subject, _ in store.top_subjects(user_id, limit=pool_size):
            if needle in subject.lower():
                suggestions.append(f'subject:"{subject}"')

        # Plain text, not already using operators
        if ":" not in query:
            suggestions.extend([f"from:{query}", f"subject:{query}", f"{query} has:attachment"])

        return suggestions[:max_suggestions]
    except Exception:
        logger.exception(f"Error generating search suggestions for {query!r}")
        return []
