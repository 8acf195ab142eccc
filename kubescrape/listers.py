"""Cached listers for nodes, services, pods and secrets."""

from __future__ import annotations

from typing import Iterable, Mapping

from kubescrape.kube import Clientset, Lister, Node, Pod, Secret, Service


class MultiNamespaceListerer:
    """A set of listers, one for each namespace."""

    def __init__(self, listers: Mapping[str, Lister]) -> None:
        self._listers = dict(listers)

    def lister(self, namespace: str) -> Lister:
        """The lister for ``namespace``; raises KeyError if none was built for it."""
        try:
            return self._listers[namespace]
        except KeyError:
            raise KeyError(f"no lister for namespace {namespace!r}") from None

    def stop(self) -> None:
        """Stop every lister."""
        for lister in self._listers.values():
            lister.stop()

    def __enter__(self) -> "MultiNamespaceListerer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def new_node_lister(client: Clientset) -> Lister:
    """A lister of all nodes."""
    return Lister(client, Node.KIND)


def new_services_lister(client: Clientset) -> Lister:
    """A lister of services in all namespaces."""
    return Lister(client, Service.KIND)


def _per_namespace(kind: str, namespaces: Iterable[str], client: Clientset) -> MultiNamespaceListerer:
    return MultiNamespaceListerer({ns: Lister(client, kind, ns) for ns in namespaces})


def new_namespace_pod_listerer(namespaces: Iterable[str], client: Clientset) -> MultiNamespaceListerer:
    """Pod listers for each of ``namespaces``; an empty name covers all namespaces."""
    return _per_namespace(Pod.KIND, namespaces, client)


def new_namespace_secret_listerer(
    namespaces: Iterable[str], client: Clientset
) -> MultiNamespaceListerer:
    """Secret listers for each of ``namespaces``."""
    return _per_namespace(Secret.KIND, namespaces, client)