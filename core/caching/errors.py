"""
POS Core Caching: Errors
==========================
"""


class CacheError(Exception):
    """Base error for cache operations."""
    pass


class CacheFetchError(CacheError):
    """
    The fetcher behind a cache key failed.

    The key has already been removed when this is raised, so the
    next read starts a fresh fetch instead of replaying the error.
    """

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(f"Fetch failed for cache key {key}: {cause!r}")
