"""In-memory Kubernetes objects, label selectors, a client and cached listers."""

from __future__ import annotations

import copy
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Mapping, Optional, Union


class ObjectNotFound(LookupError):
    """Raised when a named object does not exist."""


class SelectorParseError(ValueError):
    """Raised when a label selector string cannot be parsed."""


@dataclass
class ObjectMeta:
    """Name, namespace and labels of an object."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class Namespace:
    """A namespace; cluster scoped."""

    KIND: ClassVar[str] = "namespaces"
    NAMESPACED: ClassVar[bool] = False
    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class Node:
    """A cluster node; cluster scoped."""

    KIND: ClassVar[str] = "nodes"
    NAMESPACED: ClassVar[bool] = False
    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class Pod:
    """A pod."""

    KIND: ClassVar[str] = "pods"
    NAMESPACED: ClassVar[bool] = True
    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class Secret:
    """A secret holding binary data."""

    KIND: ClassVar[str] = "secrets"
    NAMESPACED: ClassVar[bool] = True
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    data: dict[str, bytes] = field(default_factory=dict)


@dataclass
class Service:
    """A service."""

    KIND: ClassVar[str] = "services"
    NAMESPACED: ClassVar[bool] = True
    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class EndpointAddress:
    """One address backing an endpoints subset."""

    ip: str = ""


@dataclass
class EndpointPort:
    """One port exposed by an endpoints subset."""

    port: int = 0
    name: str = ""
    protocol: str = "TCP"


@dataclass
class EndpointSubset:
    """Addresses that all expose the same ports."""

    addresses: list[EndpointAddress] = field(default_factory=list)
    ports: list[EndpointPort] = field(default_factory=list)


@dataclass
class Endpoints:
    """The endpoints of a service."""

    KIND: ClassVar[str] = "endpoints"
    NAMESPACED: ClassVar[bool] = True
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    subsets: list[EndpointSubset] = field(default_factory=list)


KubeObject = Union[Namespace, Node, Pod, Secret, Service, Endpoints]

_KINDS: dict[str, type] = {
    cls.KIND: cls for cls in (Namespace, Node, Pod, Secret, Service, Endpoints)
}

_KEY_RE = re.compile(
    r"^(?:[A-Za-z0-9](?:[-A-Za-z0-9.]*[A-Za-z0-9])?/)?"
    r"[A-Za-z0-9](?:[-A-Za-z0-9_.]*[A-Za-z0-9])?$"
)
_VALUE_RE = re.compile(r"^(?:[A-Za-z0-9](?:[-A-Za-z0-9_.]*[A-Za-z0-9])?)?$")
_SET_RE = re.compile(r"^(?P<key>[^\s!=()]+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")

_OPERATORS = frozenset({"=", "!=", "in", "notin", "exists", "!"})


@dataclass(frozen=True)
class Requirement:
    """One selector requirement: ``=``, ``!=``, ``in``, ``notin``, ``exists`` or ``!``."""

    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Whether ``labels`` satisfy this requirement."""
        present = self.key in labels
        if self.operator in ("=", "in"):
            return present and labels[self.key] in self.values
        if self.operator in ("!=", "notin"):
            return not present or labels[self.key] not in self.values
        if self.operator == "exists":
            return present
        return not present


@dataclass(frozen=True)
class Selector:
    """A conjunction of requirements; with none it matches everything."""

    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Whether ``labels`` satisfy every requirement."""
        return all(r.matches(labels) for r in self.requirements)


def everything() -> Selector:
    """A selector that matches any set of labels."""
    return Selector()


def selector_from_set(labels: Mapping[str, str]) -> Selector:
    """A selector requiring each label to have exactly the given value."""
    return Selector(tuple(Requirement(k, "=", (v,)) for k, v in sorted(labels.items())))


def _requirement(key: str, operator: str, values: tuple[str, ...]) -> Requirement:
    if not _KEY_RE.match(key):
        raise SelectorParseError(f"invalid label key {key!r}")
    for value in values:
        if not _VALUE_RE.match(value):
            raise SelectorParseError(f"invalid label value {value!r}")
    if operator not in _OPERATORS:
        raise SelectorParseError(f"unknown operator {operator!r}")
    return Requirement(key, operator, values)


def _split_terms(text: str) -> list[str]:
    terms: list[str] = []
    current: list[str] = []
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorParseError(f"unbalanced parentheses in {text!r}")
        if char == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(char)
    if depth:
        raise SelectorParseError(f"unbalanced parentheses in {text!r}")
    terms.append("".join(current))
    return terms


def _parse_term(term: str) -> Requirement:
    term = term.strip()
    if not term:
        raise SelectorParseError("empty requirement")
    match = _SET_RE.match(term)
    if match:
        values = tuple(v.strip() for v in match["values"].split(","))
        return _requirement(match["key"], match["op"], values)
    if term.startswith("!"):
        return _requirement(term[1:].strip(), "!", ())
    for op in ("!=", "==", "="):
        if op in term:
            key, value = term.split(op, 1)
            return _requirement(key.strip(), "!=" if op == "!=" else "=", (value.strip(),))
    return _requirement(term, "exists", ())


def parse_selector(text: str) -> Selector:
    """Parse a label selector such as ``app=web,tier in (a,b),!legacy``."""
    if not text.strip():
        return everything()
    return Selector(tuple(_parse_term(term) for term in _split_terms(text)))


def _as_selector(selector: Union[str, Selector, None]) -> Selector:
    if selector is None:
        return everything()
    if isinstance(selector, Selector):
        return selector
    return parse_selector(selector)


def _kind_class(kind: str) -> type:
    try:
        return _KINDS[kind]
    except KeyError:
        raise ValueError(f"unknown kind {kind!r}") from None


def _key(obj: Any) -> tuple[str, str, str]:
    cls = type(obj)
    if cls.KIND not in _KINDS:
        raise ValueError(f"unsupported object {obj!r}")
    if not obj.metadata.name:
        raise ValueError("object name must not be empty")
    namespace = obj.metadata.namespace if cls.NAMESPACED else ""
    return cls.KIND, namespace, obj.metadata.name


EventCallback = Callable[[str, Any], None]


class Clientset:
    """An in-memory API server holding objects, recording calls and notifying watchers."""

    def __init__(self, *args: Any) -> None:
        self._lock = threading.RLock()
        self._objects: dict[tuple[str, str, str], Any] = {}
        self._subscribers: list[EventCallback] = []
        self._actions: list[tuple[str, str]] = []
        for obj in args:
            self._store(obj)

    def _store(self, obj: Any) -> Any:
        key = _key(obj)
        if key in self._objects:
            raise ValueError(f'{key[0]} "{key[2]}" already exists')
        stored = copy.deepcopy(obj)
        if not type(obj).NAMESPACED:
            stored.metadata.namespace = ""
        self._objects[key] = stored
        return stored

    def _notify(self, verb: str, obj: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(verb, copy.deepcopy(obj))

    def create(self, obj: Any) -> Any:
        """Store a copy of ``obj``; raises ValueError if it already exists."""
        with self._lock:
            stored = self._store(obj)
            self._actions.append(("create", type(obj).KIND))
        self._notify("create", stored)
        return copy.deepcopy(stored)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Remove an object; raises ObjectNotFound if it does not exist."""
        cls = _kind_class(kind)
        key = (kind, namespace if cls.NAMESPACED else "", name)
        with self._lock:
            self._actions.append(("delete", kind))
            removed = self._objects.pop(key, None)
        if removed is None:
            raise ObjectNotFound(f'{kind} "{name}" not found')
        self._notify("delete", removed)

    def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: Union[str, Selector, None] = None,
    ) -> list[Any]:
        """Copies of the objects of ``kind`` in ``namespace`` (all if empty) matching the selector."""
        _kind_class(kind)
        selector = _as_selector(label_selector)
        with self._lock:
            self._actions.append(("list", kind))
            return [
                copy.deepcopy(obj)
                for (obj_kind, obj_ns, _), obj in self._objects.items()
                if obj_kind == kind
                and (not namespace or obj_ns == namespace)
                and selector.matches(obj.metadata.labels)
            ]

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Call ``callback(verb, obj)`` on every create and delete; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def actions(self) -> list[tuple[str, str]]:
        """The ``(verb, kind)`` pairs of the calls made so far."""
        with self._lock:
            return list(self._actions)


class Lister:
    """A local cache of objects of one kind, kept in sync with the client until stopped."""

    def __init__(
        self,
        client: Clientset,
        kind: str,
        namespace: str = "",
        label_selector: Union[str, Selector, None] = None,
    ) -> None:
        self._cls = _kind_class(kind)
        self._kind = kind
        self._namespace = namespace
        self._selector = _as_selector(label_selector)
        self._lock = threading.Lock()
        self._cache: dict[tuple[str, str], Any] = {}
        with self._lock:
            self._unsubscribe = client.subscribe(self._on_event)
            for obj in client.list(kind, namespace, self._selector):
                self._cache[(obj.metadata.namespace, obj.metadata.name)] = obj

    def _accepts(self, obj: Any) -> bool:
        return (
            type(obj).KIND == self._kind
            and (not self._namespace or obj.metadata.namespace == self._namespace)
            and self._selector.matches(obj.metadata.labels)
        )

    def _on_event(self, verb: str, obj: Any) -> None:
        if not self._accepts(obj):
            return
        key = (obj.metadata.namespace, obj.metadata.name)
        with self._lock:
            if verb == "create":
                self._cache[key] = obj
            elif verb == "delete":
                self._cache.pop(key, None)

    def list(self, selector: Optional[Selector] = None) -> list[Any]:
        """Cached objects whose labels match ``selector`` (all when omitted)."""
        wanted = selector or everything()
        with self._lock:
            return [obj for obj in self._cache.values() if wanted.matches(obj.metadata.labels)]

    def get(self, name: str) -> Any:
        """The cached object called ``name``; raises ObjectNotFound if absent."""
        with self._lock:
            for (_, obj_name), obj in self._cache.items():
                if obj_name == name:
                    return obj
        raise ObjectNotFound(f'{self._kind} "{name}" not found')

    def stop(self) -> None:
        """Stop following the client; the cache keeps its last contents."""
        self._unsubscribe()