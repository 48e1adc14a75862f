"""sleuth - Gmail-style structured search over a multi-user message store."""

__version__ = "0.1.0"
