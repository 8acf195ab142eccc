"""Rules that excuse a metric from being required by the asserter."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

# An exclusion rule receives the spec group name, the metric spec and the entity,
# and returns True when the metric may be missing from the entity.
Func = Callable[[str, Any, Any], bool]


def exclude(*funcs: Func) -> Func:
    """A rule that holds only when every given rule holds, evaluated in order."""

    def rule(group: str, spec: Any, entity: Any) -> bool:
        return all(f(group, spec, entity) for f in funcs)

    return rule


def optional() -> Func:
    """A rule excusing metrics whose spec is marked optional."""

    def rule(group: str, spec: Any, entity: Any) -> bool:
        return bool(spec.optional)

    return rule


def groups(*names: str) -> Func:
    """A rule excusing every metric of the named spec groups."""
    wanted = frozenset(names)

    def rule(group: str, spec: Any, entity: Any) -> bool:
        return group in wanted

    return rule


def metrics(*names: str) -> Func:
    """A rule excusing the named metrics, compared case-insensitively."""
    wanted = frozenset(name.casefold() for name in names)

    def rule(group: str, spec: Any, entity: Any) -> bool:
        return spec.name.casefold() in wanted

    return rule


def dependent(dependencies: Mapping[str, Iterable[str]]) -> Func:
    """A rule excusing metrics that depend on a parent metric the entity lacks.

    ``dependencies`` maps a parent metric name to the names of metrics that
    are only expected when the parent is present.
    """
    frozen = {parent: frozenset(children) for parent, children in dependencies.items()}

    def rule(group: str, spec: Any, entity: Any) -> bool:
        for parent, children in frozen.items():
            for metric_set in entity.metrics:
                if parent in metric_set.metrics:
                    continue
                if spec.name in children:
                    return True
        return False

    return rule