"""Namespace filtering by labels or expressions, with a per-interval cache."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Protocol

from kubescrape.config import InvalidMatchExpressionsValue, NamespaceSelector
from kubescrape.kube import Clientset, Lister, Namespace, SelectorParseError, parse_selector, selector_from_set

_log = logging.getLogger(__name__)


class _Filterer(Protocol):
    def is_allowed(self, namespace: str) -> bool: ...


class NamespaceInMemoryStore:
    """Remembers filter decisions per namespace until vacuumed."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or _log
        self._lock = threading.Lock()
        self._cache: dict[str, bool] = {}

    def put(self, namespace: str, match: bool) -> None:
        """Record the decision for ``namespace``."""
        with self._lock:
            self._cache[namespace] = match

    def match(self, namespace: str) -> Optional[bool]:
        """The recorded decision, or None if there is none."""
        with self._lock:
            return self._cache.get(namespace)

    def vacuum(self) -> None:
        """Forget every recorded decision."""
        with self._lock:
            self._logger.debug("cleaning cache: len %d ...", len(self._cache))
            self._cache = {}
            self._logger.debug("cache cleaned: len %d ...", len(self._cache))


class NamespaceFilter:
    """Decides whether a namespace may be scraped from a namespace selector."""

    def __init__(
        self,
        selector: Optional[NamespaceSelector],
        client: Clientset,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._selector = selector
        self._logger = logger or _log
        self._lister = Lister(client, Namespace.KIND)

    def is_allowed(self, namespace: str) -> bool:
        """Whether ``namespace`` matches the configured labels or expressions."""
        if self._selector is None:
            self._logger.debug("allowing %r namespace as selector is nil", namespace)
            return True
        if self._selector.match_labels is not None:
            return self._match_by_labels(namespace)
        if self._selector.match_expressions is not None:
            return self._match_by_expressions(namespace)
        return True

    def _contains(self, namespace: str, selector: Any) -> bool:
        return any(ns.metadata.name == namespace for ns in self._lister.list(selector))

    def _match_by_labels(self, namespace: str) -> bool:
        labels = self._string_labels(self._selector.match_labels)
        return self._contains(namespace, selector_from_set(labels))

    def _match_by_expressions(self, namespace: str) -> bool:
        for expression in self._selector.match_expressions:
            try:
                selector = parse_selector(expression.to_selector_string())
            except (InvalidMatchExpressionsValue, SelectorParseError) as exc:
                self._logger.error("parsing namespace expression: %s", exc)
                return True
            if not self._contains(namespace, selector):
                return False
        return True

    def _string_labels(self, match_labels: Mapping[str, Any]) -> dict[str, str]:
        labels = {}
        for key, value in match_labels.items():
            if not isinstance(value, str):
                self._logger.error("matchLabels value is not a string: %r", value)
                continue
            labels[key] = value
        return labels

    def close(self) -> None:
        """Stop following namespace changes."""
        self._lister.stop()

    def __enter__(self) -> "NamespaceFilter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CachedNamespaceFilter:
    """Consults the cache before asking the wrapped filter."""

    def __init__(self, filter: _Filterer, cache: NamespaceInMemoryStore) -> None:
        self._filter = filter
        self._cache = cache

    def is_allowed(self, namespace: str) -> bool:
        """The cached decision if there is one, otherwise the filter's, which is then cached."""
        cached = self._cache.match(namespace)
        if cached is not None:
            return cached
        match = self._filter.is_allowed(namespace)
        self._cache.put(namespace, match)
        return match