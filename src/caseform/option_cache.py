"""
Token-based cache for remote option lists.

Data page results only stay valid for the view they were fetched for. The
cache is keyed by (data page, parameters) and invalidated as a whole whenever
the token (the container's view generation) changes.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Optional, Tuple, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class CacheKey:
    """Immutable cache key that can include multiple components."""
    components: Tuple[Any, ...]

    @classmethod
    def from_args(cls, *args) -> 'CacheKey':
        """Create cache key from variable arguments."""
        return cls(components=args)

    @classmethod
    def for_lookup(cls, data_page_id: str, params: Mapping[str, Any]) -> 'CacheKey':
        """Key of one data page call; parameter order does not matter."""
        return cls(components=(data_page_id, tuple(sorted((k, repr(v)) for k, v in params.items()))))


class OptionCache(Generic[T]):
    """
    Async get-or-fetch cache with automatic invalidation.

    Example:
        cache = OptionCache(lambda: container.generation)
        rows = await cache.get_or_fetch(
            key=CacheKey.for_lookup('D_Cities', {'Country': 'FR'}),
            fetch_fn=lambda: service.fetch_options('D_Cities', {'Country': 'FR'}),
        )

    Failed fetches raise through and are never cached.
    """

    def __init__(self, token_provider: Callable[[], int]):
        """
        Args:
            token_provider: Function that returns the current token value
        """
        self._token_provider = token_provider
        self._cache: Dict[CacheKey, T] = {}
        self._last_token: int = -1

    def _sync_token(self) -> None:
        current_token = self._token_provider()
        if current_token != self._last_token:
            self._cache.clear()
            self._last_token = current_token

    async def get_or_fetch(self, key: CacheKey, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        self._sync_token()
        if key in self._cache:
            return self._cache[key]

        token = self._last_token
        value = await fetch_fn()
        # A newer view may have arrived while the fetch was in flight
        if self._token_provider() == token:
            self._cache[key] = value
        return value

    def get(self, key: CacheKey) -> Optional[T]:
        """Cached value without fetching; None if absent or token changed."""
        self._sync_token()
        return self._cache.get(key)

    def invalidate(self) -> None:
        """Manually invalidate the entire cache."""
        self._cache.clear()
        self._last_token = -1

    def __len__(self) -> int:
        return len(self._cache)
