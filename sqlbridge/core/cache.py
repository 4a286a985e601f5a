"""Process-wide cache of compiled statement templates.

Components:
- TemplateCacheKey: SQL text plus the parameter name layout it was compiled against
- CacheStats: hit / miss / compilation / eviction counters
- TemplateCache: thread-safe template cache with optional LRU bound
- get_template_cache / configure_template_cache / reset_template_cache: the
  process-wide instance

Entries are never evicted unless a ``max_size`` is configured. Lookups of cached
templates on an unbounded cache take no lock; compilation of a missing entry runs
under the cache lock so each key is compiled at most once.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Final, NamedTuple, Optional

from mypy_extensions import mypyc_attr

from sqlbridge.core.template import StatementTemplate, compile_template, has_named_parameters
from sqlbridge.exceptions import ImproperConfigurationError
from sqlbridge.utils.logging import CACHE_LOGGER_NAME, get_logger, log_with_context

if TYPE_CHECKING:
    from sqlbridge.config import TemplateCacheConfig

__all__ = (
    "CacheStats",
    "TemplateCache",
    "TemplateCacheKey",
    "configure_template_cache",
    "get_template_cache",
    "reset_template_cache",
)

logger = get_logger(CACHE_LOGGER_NAME)

TemplateCompiler = Callable[..., StatementTemplate]

CACHE_STATS_SLOTS: Final = ("compilations", "evictions", "hits", "misses")


class TemplateCacheKey(NamedTuple):
    sql: str
    parameter_names: tuple[str, ...]
    named_parameters: bool


@mypyc_attr(allow_interpreted_subclasses=False)
class CacheStats:
    """Cache statistics tracking.

    Hit counts on the lock-free path are best effort under heavy concurrency;
    compilation and eviction counts are exact.
    """

    __slots__ = CACHE_STATS_SLOTS

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.compilations = 0
        self.evictions = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.compilations = 0
        self.evictions = 0

    def __repr__(self) -> str:
        return (
            f"CacheStats(hit_rate={self.hit_rate:.1f}%, hits={self.hits}, misses={self.misses}, "
            f"compilations={self.compilations}, evictions={self.evictions})"
        )


@mypyc_attr(allow_interpreted_subclasses=False)
class TemplateCache:
    """Thread-safe mapping from SQL text to its compiled statement template.

    Args:
        max_size: Maximum number of templates kept (least recently used evicted
            first). ``None`` keeps every template for the life of the cache.
        compiler: Function compiling a template; defaults to
            :func:`~sqlbridge.core.template.compile_template`.
    """

    __slots__ = ("_compiler", "_entries", "_lock", "_max_size", "_stats")

    def __init__(self, max_size: Optional[int] = None, compiler: "Optional[TemplateCompiler]" = None) -> None:
        if max_size is not None and max_size < 1:
            msg = f"Template cache max_size must be a positive integer or None, got {max_size!r}"
            raise ImproperConfigurationError(msg)
        self._entries: OrderedDict[TemplateCacheKey, StatementTemplate] = OrderedDict()
        self._lock = threading.Lock()
        self._max_size = max_size
        self._stats = CacheStats()
        self._compiler: TemplateCompiler = compiler or compile_template

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @staticmethod
    def make_key(sql: str, parameter_names: "Sequence[str]", named_parameters: bool = True) -> TemplateCacheKey:
        """Build the cache key for ``sql``.

        Text that compiles positionally ignores parameter names, so every layout shares one key.
        """
        if not named_parameters or not has_named_parameters(sql):
            return TemplateCacheKey(sql, (), False)
        return TemplateCacheKey(sql, tuple(parameter_names), True)

    def resolve(
        self, sql: str, parameter_names: "Sequence[str]" = (), *, named_parameters: bool = True
    ) -> StatementTemplate:
        """Return the template for ``sql``, compiling it on first use.

        Args:
            sql: SQL text as written by the application
            parameter_names: Names of the issuing command's parameters, in list order
            named_parameters: Whether ``@name`` detection is enabled

        Raises:
            MissingParameterError: Compilation found an unknown named reference.
                Nothing is cached in that case.

        Returns:
            The cached or freshly compiled template
        """
        key = self.make_key(sql, parameter_names, named_parameters)

        if self._max_size is None:
            template = self._entries.get(key)
            if template is not None:
                self._stats.hits += 1
                return template

        with self._lock:
            template = self._entries.get(key)
            if template is not None:
                self._stats.hits += 1
                if self._max_size is not None:
                    self._entries.move_to_end(key)
                return template

            self._stats.misses += 1
            template = self._compiler(sql, key.parameter_names, named_parameters=key.named_parameters)
            self._stats.compilations += 1
            self._entries[key] = template

            if self._max_size is not None and len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

        log_with_context(
            logger,
            logging.DEBUG,
            "cache.template.compile",
            slot_count=template.slot_count,
            rewritten=template.rewritten_sql != sql,
            cache_size=len(self._entries),
        )
        return template

    def get(
        self, sql: str, parameter_names: "Sequence[str]" = (), *, named_parameters: bool = True
    ) -> Optional[StatementTemplate]:
        """Return the cached template without compiling, or None."""
        return self._entries.get(self.make_key(sql, parameter_names, named_parameters))

    def discard(self, sql: str, parameter_names: "Sequence[str]" = (), *, named_parameters: bool = True) -> bool:
        """Remove one template from the cache.

        Returns:
            True if an entry was removed
        """
        key = self.make_key(sql, parameter_names, named_parameters)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats.reset()

    def size(self) -> int:
        return len(self._entries)

    def get_stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, sql: object) -> bool:
        if isinstance(sql, TemplateCacheKey):
            return sql in self._entries
        return any(key.sql == sql for key in list(self._entries))

    def __repr__(self) -> str:
        return f"TemplateCache(size={len(self._entries)}, max_size={self._max_size}, stats={self._stats!r})"


_template_cache: Optional[TemplateCache] = None
_template_cache_lock = threading.Lock()


def get_template_cache() -> TemplateCache:
    """Get the process-wide template cache, creating it on first use.

    Returns:
        Singleton template cache instance
    """
    global _template_cache
    if _template_cache is None:
        with _template_cache_lock:
            if _template_cache is None:
                _template_cache = TemplateCache()
    return _template_cache


def configure_template_cache(config: "TemplateCacheConfig") -> TemplateCache:
    """Replace the process-wide template cache with one built from ``config``.

    Commands holding an explicitly injected cache are unaffected.

    Args:
        config: New cache configuration

    Returns:
        The new process-wide cache
    """
    global _template_cache
    cache = TemplateCache(max_size=config.max_size)
    with _template_cache_lock:
        _template_cache = cache
    logger.info("Template cache configured (max_size=%s)", config.max_size)
    return cache


def reset_template_cache() -> None:
    """Tear down the process-wide template cache; the next lookup creates a fresh one."""
    global _template_cache
    with _template_cache_lock:
        if _template_cache is not None:
            _template_cache.clear()
        _template_cache = None
