"""
Syncwire - Outbound webhooks and bidirectional project sync.

Signed, retried webhook delivery for domain events, plus sync adapters
that mirror projects with Linear issues and Notion database rows.
"""

__version__ = "1.0.0"
__version_tuple__ = (1, 0, 0)

__all__ = [
    "__version__",
    "__version_tuple__",
]
