"""Discovery of service endpoints, optionally waiting until some appear."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol, Union

from kubescrape.kube import Clientset, Endpoints, Lister


class DiscoveryTimeoutError(TimeoutError):
    """No endpoints were found before the timeout."""


@dataclass
class EndpointsDiscoveryConfig:
    """Which endpoints to discover."""

    label_selector: str = ""
    namespace: str = ""
    port: int = 0
    client: Optional[Clientset] = None


class _Discoverer(Protocol):
    def discover(self) -> list[str]: ...


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class EndpointsDiscoverer:
    """Lists ``host:port`` pairs of matching endpoints."""

    def __init__(self, config: EndpointsDiscoveryConfig) -> None:
        if config.client is None:
            raise ValueError("client must be configured")
        self._port = config.port
        self._lister = Lister(config.client, Endpoints.KIND, config.namespace, config.label_selector)

    def discover(self) -> list[str]:
        """Sorted ``host:port`` strings, restricted to the configured port if set."""
        hosts = [
            _join_host_port(address.ip, port.port)
            for endpoints in self._lister.list()
            for subset in endpoints.subsets
            for address in subset.addresses
            for port in subset.ports
            if not self._port or self._port == port.port
        ]
        # Sorted so that endpoints are always tried in the same order.
        return sorted(hosts)


def _seconds(value: Union[timedelta, float]) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class EndpointsDiscovererWithTimeout:
    """Polls another discoverer until it returns endpoints or the timeout passes."""

    def __init__(
        self,
        discoverer: _Discoverer,
        backoff_delay: Union[timedelta, float],
        timeout: Union[timedelta, float],
    ) -> None:
        self._discoverer = discoverer
        self._backoff_delay = _seconds(backoff_delay)
        self._timeout = _seconds(timeout)

    def discover(self) -> list[str]:
        """Endpoints from the inner discoverer; its errors propagate unchanged.

        Raises DiscoveryTimeoutError if it keeps returning nothing.
        """
        start = time.monotonic()
        while time.monotonic() - start < self._timeout:
            endpoints = self._discoverer.discover()
            if endpoints:
                return endpoints
            time.sleep(self._backoff_delay)
        raise DiscoveryTimeoutError("timeout discovering endpoints")