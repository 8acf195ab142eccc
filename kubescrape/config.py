"""Loading and validation of the integration configuration."""

import json
import os
import re
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union, get_args, get_origin

import yaml

DEFAULT_CONFIG_FILE_NAME = "nri-kubernetes"
DEFAULT_CONFIG_FOLDER_NAME = "/etc/newrelic-infra"

DEFAULT_TIMEOUT = timedelta(seconds=10)
DEFAULT_RETRIES = 3
DEFAULT_SCRAPER_MAX_RERUNS = 4
DEFAULT_AGENT_TIMEOUT = timedelta(seconds=3)
DEFAULT_PROBE_TIMEOUT = timedelta(seconds=90)
DEFAULT_PROBE_BACKOFF = timedelta(seconds=5)

DEFAULT_NETWORK_ROUTE_FILE = "/proc/net/route"

SINK_TYPE_HTTP = "http"
SINK_TYPE_STDOUT = "stdout"

ENV_PREFIX = "NRI_KUBERNETES"

# Label keys such as "newrelic.com/scrape" contain dots, so nested keys use "|".
_KEY_DELIMITER = "|"
_SUPPORTED_EXTENSIONS = ("json", "yaml", "yml")


class ConfigError(Exception):
    """Raised when the configuration cannot be found, read or decoded."""

    def __init__(self, message: str, config: Optional["Config"] = None) -> None:
        super().__init__(message)
        self.config = config


class InvalidMatchLabelsValue(ConfigError):
    """A namespaceSelector.matchLabels value is not a string."""


class InvalidMatchExpressionsValue(ConfigError):
    """A namespaceSelector.matchExpressions value is not a string."""


def _opt(key: str, default: Any = None, factory: Any = None) -> Any:
    if factory is not None:
        return field(default_factory=factory, metadata={"key": key})
    return field(default=default, metadata={"key": key})


_ZERO = timedelta(0)


@dataclass
class TLSConfig:
    """TLS settings for the HTTP sink."""

    enabled: bool = _opt("enabled", False)
    cert_path: str = _opt("certPath", "")
    key_path: str = _opt("keyPath", "")
    ca_path: str = _opt("caPath", "")


@dataclass
class HTTPSink:
    """Settings for reporting metrics to the agent over HTTP."""

    port: int = _opt("port", 0)
    timeout: timedelta = _opt("timeout", _ZERO)
    retries: int = _opt("retries", 0)
    tls: TLSConfig = _opt("tls", factory=TLSConfig)
    probe_timeout: timedelta = _opt("probeTimeout", _ZERO)
    probe_backoff: timedelta = _opt("probeBackoff", _ZERO)


@dataclass
class SinkConfig:
    """Where the integration reports metrics to."""

    type: str = _opt("type", "")
    http: HTTPSink = _opt("http", factory=HTTPSink)


@dataclass
class KSMDiscovery:
    """Timing of the kube-state-metrics service discovery."""

    backoff_delay: timedelta = _opt("backoffDelay", _ZERO)
    timeout: timedelta = _opt("timeout", _ZERO)


@dataclass
class KSM:
    """Settings for the kube-state-metrics scraper."""

    enabled: bool = _opt("enabled", False)
    static_url: str = _opt("staticURL", "")
    scheme: str = _opt("scheme", "")
    port: int = _opt("port", 0)
    selector: str = _opt("selector", "")
    namespace: str = _opt("namespace", "")
    distributed: bool = _opt("distributed", False)
    timeout: timedelta = _opt("timeout", _ZERO)
    retries: int = _opt("retries", 0)
    discovery: KSMDiscovery = _opt("discovery", factory=KSMDiscovery)


@dataclass
class Kubelet:
    """Settings for the kubelet scraper."""

    enabled: bool = _opt("enabled", False)
    port: int = _opt("port", 0)
    scheme: str = _opt("scheme", "")
    network_route_file: str = _opt("networkRouteFile", "")
    timeout: timedelta = _opt("timeout", _ZERO)
    retries: int = _opt("retries", 0)
    scraper_max_reruns: int = _opt("scraperMaxReruns", 0)


@dataclass
class MTLS:
    """Where to fetch mutual TLS material for a control plane endpoint."""

    tls_secret_name: str = _opt("secretName", "")
    tls_secret_namespace: str = _opt("secretNamespace", "")


@dataclass
class Auth:
    """Authentication used against an endpoint: ``mtls`` or ``token``."""

    type: str = _opt("type", "")
    mtls: Optional[MTLS] = _opt("mtls", None)


@dataclass
class Endpoint:
    """How to perform a request to a component."""

    url: str = _opt("url", "")
    auth: Optional[Auth] = _opt("auth", None)
    insecure_skip_verify: bool = _opt("insecureSkipVerify", False)


@dataclass
class AutodiscoverControlPlane:
    """Criteria for matching a control plane pod."""

    namespace: str = _opt("namespace", "")
    selector: str = _opt("selector", "")
    match_node: bool = _opt("matchNode", False)
    endpoints: list[Endpoint] = _opt("endpoints", factory=list)


@dataclass
class ControlPlaneComponent:
    """Settings for one control plane component."""

    enabled: bool = _opt("enabled", False)
    static_endpoint: Optional[Endpoint] = _opt("staticEndpoint", None)
    autodiscover: list[AutodiscoverControlPlane] = _opt("autodiscover", factory=list)


@dataclass
class ControlPlane:
    """Settings for the control plane scraper."""

    enabled: bool = _opt("enabled", False)
    etcd: ControlPlaneComponent = _opt("etcd", factory=ControlPlaneComponent)
    api_server: ControlPlaneComponent = _opt("apiServer", factory=ControlPlaneComponent)
    controller_manager: ControlPlaneComponent = _opt(
        "controllerManager", factory=ControlPlaneComponent
    )
    scheduler: ControlPlaneComponent = _opt("scheduler", factory=ControlPlaneComponent)
    timeout: timedelta = _opt("timeout", _ZERO)
    retries: int = _opt("retries", 0)


@dataclass
class Expression:
    """One namespace selector requirement: key, operator and values."""

    key: str = _opt("key", "")
    operator: str = _opt("operator", "")
    values: list[Any] = _opt("values", factory=list)

    def to_selector_string(self) -> str:
        """Render the expression as a label selector, e.g. ``a notin (x,y)``."""
        rendered = []
        for value in self.values:
            if not isinstance(value, str):
                raise InvalidMatchExpressionsValue(
                    f"parsing expression invalid value: {value!r}, type: {type(value).__name__}"
                )
            rendered.append(value)
        return f"{self.key} {self.operator.lower()} ({','.join(rendered)})"


@dataclass
class NamespaceSelector:
    """Filtering of monitored namespaces by labels or expressions."""

    match_labels: Optional[dict[str, Any]] = _opt("matchLabels", None)
    match_expressions: Optional[list[Expression]] = _opt("matchExpressions", None)


@dataclass
class Config:
    """The complete integration configuration."""

    verbose: bool = _opt("verbose", False)
    log_level: str = _opt("logLevel", "")
    cluster_name: str = _opt("clusterName", "")
    kubeconfig_path: str = _opt("kubeconfigPath", "")
    node_ip: str = _opt("nodeIP", "")
    node_name: str = _opt("nodeName", "")
    interval: timedelta = _opt("interval", _ZERO)
    sink: SinkConfig = _opt("sink", factory=SinkConfig)
    control_plane: ControlPlane = _opt("controlPlane", factory=ControlPlane)
    kubelet: Kubelet = _opt("kubelet", factory=Kubelet)
    ksm: KSM = _opt("ksm", factory=KSM)
    namespace_selector: Optional[NamespaceSelector] = _opt("namespaceSelector", None)


_DEFAULTS: dict = {
    "clusterName": "cluster",
    "verbose": False,
    "kubelet|networkRouteFile": DEFAULT_NETWORK_ROUTE_FILE,
    "nodeName": "node",
    "nodeIP": "node",
    "sink|type": SINK_TYPE_HTTP,
    "sink|http|port": 0,
    "sink|http|timeout": DEFAULT_AGENT_TIMEOUT,
    "sink|http|retries": DEFAULT_RETRIES,
    "sink|http|probeTimeout": DEFAULT_PROBE_TIMEOUT,
    "sink|http|probeBackoff": DEFAULT_PROBE_BACKOFF,
    "kubelet|timeout": DEFAULT_TIMEOUT,
    "kubelet|retries": DEFAULT_RETRIES,
    "kubelet|scraperMaxReruns": DEFAULT_SCRAPER_MAX_RERUNS,
    "controlPlane|timeout": DEFAULT_TIMEOUT,
    "controlPlane|retries": DEFAULT_RETRIES,
    "ksm|timeout": DEFAULT_TIMEOUT,
    "ksm|retries": DEFAULT_RETRIES,
    "ksm|discovery|backoffDelay": timedelta(seconds=7),
    "ksm|discovery|timeout": timedelta(seconds=60),
}


def load_config(file_path: Union[str, os.PathLike], file_name: str) -> Config:
    """Load the configuration named ``file_name`` from ``file_path`` or the working directory.

    Defaults are applied first, then the file, then ``NRI_KUBERNETES_*`` environment variables.
    """
    path = _find_config_file([Path(file_path), Path(".")], file_name)
    tree = _defaults_tree()
    _deep_merge(tree, _lower_keys(_read_config_file(path)))
    _apply_env(tree, ())

    config = _decode(Config, tree, "")
    _check_namespace_selector(config)
    return config


def _find_config_file(directories: list, file_name: str) -> Path:
    for directory in directories:
        for extension in _SUPPORTED_EXTENSIONS:
            candidate = directory / f"{file_name}.{extension}"
            if candidate.is_file():
                return candidate
    searched = ", ".join(str(d) for d in directories)
    raise ConfigError(f'config file "{file_name}" not found in [{searched}]')


def _read_config_file(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"reading config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} does not hold a map")
    return data


def _defaults_tree() -> dict:
    tree: dict = {}
    for key, value in _DEFAULTS.items():
        *parents, leaf = key.lower().split(_KEY_DELIMITER)
        node = tree
        for parent in parents:
            node = node.setdefault(parent, {})
        node[leaf] = value
    return tree


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def _deep_merge(target: dict, source: dict) -> None:
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            _deep_merge(existing, value)
        else:
            target[key] = value


def _apply_env(tree: dict, prefix: tuple) -> None:
    for key, value in tree.items():
        path = prefix + (key,)
        if isinstance(value, dict) and value:
            _apply_env(value, path)
            continue
        env_value = os.environ.get(f"{ENV_PREFIX}_{'_'.join(path)}".upper())
        if env_value:
            tree[key] = env_value


def _join(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _decode(target: Any, value: Any, path: str) -> Any:
    origin = get_origin(target)
    if origin is Union:
        inner = next(arg for arg in get_args(target) if arg is not type(None))
        return None if value is None else _decode(inner, value, path)
    if is_dataclass(target):
        return _decode_struct(target, value, path)
    if origin is list:
        return _decode_list(get_args(target)[0], value, path)
    if origin is dict or target is dict:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ConfigError(f"{path}: expected a map, got {type(value).__name__}")
        return dict(value)
    if target is Any:
        return value
    if target is bool:
        return _to_bool(value, path)
    if target is int:
        return _to_int(value, path)
    if target is str:
        return _to_str(value, path)
    if target is timedelta:
        return _to_duration(value, path)
    raise ConfigError(f"{path}: unsupported target type {target!r}")


def _decode_struct(cls: type, value: Any, path: str) -> Any:
    if value is None:
        return cls()
    if not isinstance(value, dict):
        raise ConfigError(f"{path or 'config'}: expected a map, got {type(value).__name__}")
    by_key = {f.metadata["key"].lower(): f for f in fields(cls)}
    kwargs = {}
    unused = []
    for key, item in value.items():
        spec = by_key.get(str(key).lower())
        if spec is None:
            unused.append(_join(path, key))
            continue
        kwargs[spec.name] = _decode(spec.type, item, _join(path, spec.metadata["key"]))
    if unused:
        raise ConfigError(f"{path or 'config'} has invalid keys: {', '.join(sorted(unused))}")
    return cls(**kwargs)


def _decode_list(item_type: Any, value: Any, path: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",") if value else []
    elif not isinstance(value, list):
        value = [value]
    return [_decode(item_type, item, f"{path}[{i}]") for i, item in enumerate(value)]


_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _to_bool(value: Any, path: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "" or value in _FALSE_WORDS:
            return False
        if value in _TRUE_WORDS:
            return True
    raise ConfigError(f"{path}: cannot parse {value!r} as bool")


def _to_int(value: Any, path: str) -> int:
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value == "":
            return 0
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"{path}: cannot parse {value!r} as int") from exc
    raise ConfigError(f"{path}: expected an int, got {type(value).__name__}")


def _to_str(value: Any, path: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{path}: expected a string, got {type(value).__name__}")


def _to_duration(value: Any, path: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"{path}: expected a duration, got bool")
    if isinstance(value, (int, float)):
        return _from_nanoseconds(Decimal(value))
    if isinstance(value, str):
        return _parse_duration(value, path)
    raise ConfigError(f"{path}: expected a duration, got {type(value).__name__}")


_UNIT_NANOSECONDS = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),
    "μs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _from_nanoseconds(nanoseconds: Decimal) -> timedelta:
    return timedelta(microseconds=float(nanoseconds / 1000))


def _parse_duration(text: str, path: str) -> timedelta:
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f"{path}: invalid duration {text!r}")
    total = Decimal(0)
    position = 0
    while position < len(rest):
        match = _DURATION_PART.match(rest, position)
        if match is None:
            raise ConfigError(f"{path}: invalid duration {text!r}")
        try:
            total += Decimal(match.group(1)) * _UNIT_NANOSECONDS[match.group(2)]
        except InvalidOperation as exc:
            raise ConfigError(f"{path}: invalid duration {text!r}") from exc
        position = match.end()
    return _from_nanoseconds(total * sign)


def _check_namespace_selector(config: Config) -> None:
    selector = config.namespace_selector
    if selector is None:
        return
    for value in (selector.match_labels or {}).values():
        if not isinstance(value, str):
            raise InvalidMatchLabelsValue(
                f"invalid matchLabels value: {value!r}, type {type(value).__name__}", config
            )
    for expression in selector.match_expressions or []:
        for value in expression.values:
            if not isinstance(value, str):
                raise InvalidMatchExpressionsValue(
                    f"invalid matchExpressions value: {value!r}, type {type(value).__name__}",
                    config,
                )