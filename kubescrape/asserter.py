"""Checks that entities carry every metric defined in a set of spec groups."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from kubescrape.exclude import Func

_ENTITY_NAMESPACE_SEPARATOR = ":"

_log = logging.getLogger(__name__)


class SourceType(enum.Enum):
    """How a metric value is to be interpreted."""

    GAUGE = "gauge"
    RATE = "rate"
    DELTA = "delta"
    ATTRIBUTE = "attribute"
    PRATE = "prate"
    PDELTA = "pdelta"


class AssertionFailure(AssertionError):
    """Raised when entities lack required metrics; ``messages`` lists each problem."""

    def __init__(self, messages: Iterable[str]) -> None:
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


@dataclass(frozen=True)
class Asserter:
    """Chainable checker; each chained call returns a new asserter and leaves this one unchanged.

    ``spec_groups`` maps a group name to a group whose ``specs`` have ``name``,
    ``type`` and ``optional``. Entities have ``metadata.name``,
    ``metadata.namespace`` and ``metrics``, a list of sets each with a
    ``metrics`` mapping.
    """

    entities: tuple[Any, ...] = ()
    spec_groups: Mapping[str, Any] = field(default_factory=dict)
    excluded_groups: tuple[str, ...] = ()
    exclusions: tuple[Func, ...] = ()
    silent: bool = False
    group_aliases: Mapping[str, str] = field(default_factory=dict)

    def using(self, groups: Mapping[str, Any]) -> "Asserter":
        """An asserter checking against ``groups``."""
        return replace(self, spec_groups=groups)

    def on(self, entities: Iterable[Any]) -> "Asserter":
        """An asserter checking ``entities``."""
        return replace(self, entities=tuple(entities))

    def excluding(self, *funcs: Func) -> "Asserter":
        """An asserter that tolerates missing metrics for which any of ``funcs`` holds."""
        return replace(self, exclusions=self.exclusions + funcs)

    def excluding_groups(self, *names: str) -> "Asserter":
        """An asserter that skips the named groups entirely."""
        return replace(self, excluded_groups=self.excluded_groups + names)

    def silently(self) -> "Asserter":
        """An asserter that does not report excluded missing metrics."""
        return replace(self, silent=True)

    def aliasing_groups(self, aliases: Mapping[str, str]) -> "Asserter":
        """An asserter looking up entities of a group under an alias."""
        return replace(self, group_aliases=dict(aliases))

    def check(self) -> list[str]:
        """Check every spec group and return notes about what was excluded.

        Raises AssertionFailure if no groups were given, if a non-excluded
        group has no entity, or if an entity lacks a metric not excused by
        an exclusion rule.
        """
        if not self.spec_groups:
            raise AssertionFailure(["cannot assert empty spec groups, did you forget using()?"])

        notes: list[str] = []
        failures: list[str] = []
        for group_name, group in self.spec_groups.items():
            if group_name in self.excluded_groups:
                notes.append(f"excluding spec group {group_name!r}")
                continue

            pseudotype = self.group_aliases.get(group_name) or group_name
            entities = [e for e in self.entities if _spec_group_name_match(e, pseudotype)]
            if not entities:
                failures.append(
                    f"could not find any entity for spec group {group_name!r} ({pseudotype!r})"
                )
                raise AssertionFailure(failures)

            for spec in _specs(group):
                for entity in entities:
                    if entity_metric_type_is(entity, spec.name, spec.type):
                        continue
                    where = f"{entity.metadata.name!r} ({entity.metadata.namespace})"
                    if self._should_exclude(group_name, spec, entity):
                        if not self.silent:
                            notes.append(f"excluded metric {spec.name!r} not found in entity {where}")
                        continue
                    failures.append(f"metric {spec.name!r} not found in entity {where}")

        for note in notes:
            _log.info(note)
        if failures:
            raise AssertionFailure(failures)
        return notes

    def _should_exclude(self, group: str, spec: Any, entity: Any) -> bool:
        return any(rule(group, spec, entity) for rule in self.exclusions)


def _specs(group: Any) -> Iterable[Any]:
    return group.specs if hasattr(group, "specs") else group


def _spec_group_name_match(entity: Any, spec_group_name: str) -> bool:
    return spec_group_name in entity.metadata.namespace.split(_ENTITY_NAMESPACE_SEPARATOR)


def _entity_metric(entity: Any, name: str) -> Any:
    for metric_set in entity.metrics:
        if name in metric_set.metrics:
            return metric_set.metrics[name]
    return None


def entity_metric_is(entity: Any, metric_name: str, metric_value: Any) -> bool:
    """Whether the entity's metric equals ``metric_value``; strings compare case-insensitively.

    Names ending in ``*`` always match.
    """
    if metric_name.endswith("*"):
        return True
    actual = _entity_metric(entity, metric_name)
    if isinstance(metric_value, str):
        return isinstance(actual, str) and actual.casefold() == metric_value.casefold()
    return type(actual) is type(metric_value) and actual == metric_value


def entity_metric_type_is(entity: Any, metric_name: str, metric_type: SourceType) -> bool:
    """Whether the entity has the metric with a value fitting ``metric_type``.

    Attributes must be strings and every other type must not be. Names
    ending in ``*`` always match.
    """
    if metric_name.endswith("*"):
        return True
    actual = _entity_metric(entity, metric_name)
    if actual is None:
        return False
    is_string = isinstance(actual, str)
    is_attribute = metric_type is SourceType.ATTRIBUTE
    return is_string == is_attribute