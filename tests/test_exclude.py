from types import SimpleNamespace

from kubescrape import exclude


def _spec(name="cpuUsedCores", optional=False):
    return SimpleNamespace(name=name, optional=optional, type=None)


def _entity(**metrics):
    return SimpleNamespace(
        metadata=SimpleNamespace(name="pod-a", namespace="k8s:cluster:pod"),
        metrics=[SimpleNamespace(metrics=dict(metrics))],
    )


def test_optional_follows_spec_flag():
    rule = exclude.optional()
    assert rule("pod", _spec(optional=True), _entity())
    assert not rule("pod", _spec(optional=False), _entity())


def test_groups_matches_only_listed_groups():
    rule = exclude.groups("node", "pod")
    assert rule("pod", _spec(), _entity())
    assert rule("node", _spec(), _entity())
    assert not rule("container", _spec(), _entity())


def test_groups_without_names_excludes_nothing():
    assert not exclude.groups()("pod", _spec(), _entity())


def test_metrics_is_case_insensitive():
    rule = exclude.metrics("CPUUSEDCORES")
    assert rule("pod", _spec("cpuUsedCores"), _entity())
    assert not rule("pod", _spec("memoryUsedBytes"), _entity())


def test_exclude_requires_all_rules():
    both = exclude.exclude(exclude.groups("pod"), exclude.optional())
    assert both("pod", _spec(optional=True), _entity())
    assert not both("pod", _spec(optional=False), _entity())
    assert not both("node", _spec(optional=True), _entity())


def test_exclude_with_no_rules_always_holds():
    assert exclude.exclude()("any", _spec(), _entity())


def test_exclude_stops_at_first_false_rule():
    calls = []

    def recording(group, spec, entity):
        calls.append(group)
        return True

    rule = exclude.exclude(lambda g, s, e: False, recording)
    assert not rule("pod", _spec(), _entity())
    assert calls == []


def test_dependent_excuses_children_when_parent_missing():
    rule = exclude.dependent({"parentMetric": ["childMetric"]})
    assert rule("pod", _spec("childMetric"), _entity(other=1))


def test_dependent_requires_children_when_parent_present():
    rule = exclude.dependent({"parentMetric": ["childMetric"]})
    assert not rule("pod", _spec("childMetric"), _entity(parentMetric=1))


def test_dependent_ignores_unrelated_metrics():
    rule = exclude.dependent({"parentMetric": ["childMetric"]})
    assert not rule("pod", _spec("unrelated"), _entity(other=1))