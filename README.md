# kubescrape

Building blocks for collecting metrics from a Kubernetes cluster:
configuration loading, in-memory cluster objects with label selectors and
cached listers, namespace filtering, endpoint discovery, a TTL cache, and
helpers for checking that produced entities carry the metrics a spec group
defines.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Configuration (`kubescrape.config`)

`load_config(file_path, file_name)` looks for `<file_name>.json`,
`<file_name>.yaml` or `<file_name>.yml`, first in `file_path` and then in the
current directory, and returns a `Config` dataclass. Values are layered:

1. built-in defaults (cluster name `cluster`, sink type `http`, timeouts of
   10 seconds and 3 retries for the kubelet, KSM and control plane, and so on);
2. the file, whose keys are matched case-insensitively;
3. environment variables named `NRI_KUBERNETES_<PATH>`, for example
   `NRI_KUBERNETES_CLUSTERNAME` or `NRI_KUBERNETES_KUBELET_TIMEOUT`. These
   override only keys that already have a default or appear in the file.

Durations accept Go-style strings such as `15s`, `1m30s` or `250ms`, or a
number of nanoseconds, and come back as `datetime.timedelta`.

A missing file, an unreadable file, unknown keys or values of the wrong type
raise `ConfigError`. Non-string values in `namespaceSelector.matchLabels` or
`namespaceSelector.matchExpressions` raise `InvalidMatchLabelsValue` or
`InvalidMatchExpressionsValue` (both subclasses of `ConfigError`); the
decoded configuration is available on the exception's `config` attribute.

```python
from kubescrape.config import load_config

cfg = load_config("/etc/newrelic-infra", "nri-kubernetes")
print(cfg.cluster_name, cfg.interval, cfg.kubelet.retries)
```

`Expression.to_selector_string()` renders a match expression as a label
selector, for example `newrelic.com/scrape notin (false)`.

## Cluster objects, selectors and listers (`kubescrape.kube`, `kubescrape.listers`)

`Clientset(*objects)` is an in-memory store of `Namespace`, `Node`, `Pod`,
`Secret`, `Service` and `Endpoints` objects. It supports `create(obj)`,
`delete(kind, namespace, name)` (raising `ObjectNotFound`),
`list(kind, namespace, label_selector)`, `subscribe(callback)` for create and
delete events, and `actions()`, which records each `(verb, kind)` call.

A `Lister` keeps a local copy of one kind of object, follows changes until
`stop()` is called, and answers `list(selector)` and `get(name)` without
going back to the client; `get` raises `ObjectNotFound` for a missing name.

Label selectors follow the usual syntax (`key=value`, `key!=value`,
`key in (a,b)`, `key notin (a,b)`, `key`, `!key`) and are parsed with
`parse_selector`, which raises `SelectorParseError` on bad input.
`selector_from_set` builds an equality selector from a mapping and
`everything()` matches all labels.

`kubescrape.listers` provides `new_node_lister`, `new_services_lister`,
`new_namespace_pod_listerer` and `new_namespace_secret_listerer`. The last two
return a `MultiNamespaceListerer` whose `lister(namespace)` returns the
lister for that namespace or raises `KeyError`; it can be used as a context
manager to stop all its listers.

```python
from kubescrape.kube import Clientset, ObjectMeta, Pod, selector_from_set
from kubescrape.listers import new_namespace_pod_listerer

client = Clientset(Pod(ObjectMeta(name="web", namespace="apps", labels={"tier": "front"})))
with new_namespace_pod_listerer(["apps"], client) as listerer:
    pods = listerer.lister("apps").list(selector_from_set({"tier": "front"}))
```

## Namespace filtering (`kubescrape.namespaces`)

`NamespaceFilter(selector, client, logger)` decides whether a namespace may
be scraped according to a `NamespaceSelector`: with no selector everything is
allowed; match labels take precedence over match expressions; every
expression must match. An expression that cannot be turned into a selector
is logged and the namespace is allowed.

`CachedNamespaceFilter(filter, cache)` answers from a
`NamespaceInMemoryStore` when it can and otherwise asks the wrapped filter
and remembers the answer. `NamespaceInMemoryStore.match(namespace)` returns
the stored decision or `None`, and `vacuum()` forgets everything.

## Endpoint discovery (`kubescrape.endpoints`)

`EndpointsDiscoverer(EndpointsDiscoveryConfig(...))` lists sorted `host:port`
strings from `Endpoints` objects, optionally restricted by label selector,
namespace and port; it raises `ValueError` if no client is configured.
`EndpointsDiscovererWithTimeout(discoverer, backoff_delay, timeout)` polls
another discoverer until it returns endpoints, passes its errors through,
and raises `DiscoveryTimeoutError` if none appear in time.

## TTL cache (`kubescrape.storer`)

`InMemoryStore(ttl, interval, logger)` (durations as `timedelta` or seconds)
stores values with their creation time and, from a background thread,
removes entries older than `ttl` every `interval`. `set(key, value)` returns
the Unix timestamp of the write; `get(key, expected_type)` returns
`(value, timestamp)`, raising `NotFoundError` on a miss and `TypeError` if
the value is not an instance of `expected_type`. `stop_vacuum()` stops the
expiry thread, `delete(key)` removes a key and `save()` returns a snapshot of
the stored values.

## Checking produced metrics (`kubescrape.asserter`, `kubescrape.exclude`)

`Asserter` is an immutable, chainable checker: `using(groups)`,
`on(entities)`, `excluding(*rules)`, `excluding_groups(*names)`,
`silently()` and `aliasing_groups(aliases)` each return a new asserter.
`check()` raises `AssertionFailure` (with a `messages` list) when a group has
no entity or an entity lacks a required metric, and otherwise returns notes
about excluded metrics. Rules come from `kubescrape.exclude`: `optional()`,
`groups(...)`, `metrics(...)`, `dependent(...)` and `exclude(...)`, which
combines rules so that all must hold. `entity_metric_is` and
`entity_metric_type_is` inspect a single entity.

`kubescrape.versions` lists the Kubernetes versions with sample data
(`all_versions()`, `latest_version()`, `is_below(a, b)`).

## What this package does not do

It provides no command to run and no scraping loop. `Clientset` is an
in-memory store: the package does not connect to a Kubernetes API server,
kubelet, kube-state-metrics or control plane component, and does not publish
metrics anywhere. It does not ship the sample metric data that
`kubescrape.versions` names.