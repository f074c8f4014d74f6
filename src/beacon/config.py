"""Configuration loading and merging for Beacon."""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from pathlib import Path

import yaml

from .errors import ConfigError, TransportError
from .formatting import format_key, format_value, join_key_path
from .lookup import resolve_interface_address, resolve_local_address
from .registry import DEFAULT_API_ROOT, key_url


@dataclass
class SidecarConfig:
    # Registry endpoint and key layout
    etcd: str = "http://127.0.0.1:4001"
    api_root: str = DEFAULT_API_ROOT
    key: str = ""
    # Full key path; derived from api_root + key when empty
    key_path: str = ""
    value: str = ""

    # Service identity
    host: str = ""
    port: int = 0
    interface: str = ""
    # Address used to infer the local host (defaults to the etcd url)
    remote: str = ""
    tag: str = ""
    start_time: str = ""

    # Timing (seconds)
    ttl: float = 30
    interval: float = 10
    request_timeout: float = 10

    # Exit with the child's status when it exits on its own
    propagate_exit_code: bool = False


def load_config(path: str | Path) -> SidecarConfig:
    """Load a SidecarConfig from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    valid_fields = {f.name for f in fields(SidecarConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return SidecarConfig(**filtered)


def merge_cli_args(config: SidecarConfig, args) -> SidecarConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(SidecarConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


def resolve_host(config: SidecarConfig) -> str:
    """Pick the service host: explicit, then interface, then routed local address."""
    if config.host:
        return config.host
    if config.interface:
        return resolve_interface_address(config.interface)
    return resolve_local_address(config.remote or config.etcd)


def populate(config: SidecarConfig) -> SidecarConfig:
    """Return a copy of *config* with host, key path and value fully resolved.

    Raises ResolutionError when no host is configured and none can be found.
    """
    host = resolve_host(config)
    start_time = config.start_time or datetime.now().astimezone().isoformat(timespec="seconds")
    key_path = config.key_path or join_key_path(config.api_root, config.key)
    return replace(
        config,
        host=host,
        start_time=start_time,
        key_path=format_key(key_path, host, config.port),
        value=format_value(config.value, host, config.port, config.tag, start_time),
    )


def validate(config: SidecarConfig) -> None:
    """Reject a populated config the heartbeat could not run with.

    Raises ConfigError.
    """
    try:
        key_url(config.etcd, config.key_path)
    except TransportError as exc:
        raise ConfigError(f"{exc}; expected a url such as http://127.0.0.1:4001") from exc
    if config.interval <= 0:
        raise ConfigError(f"--interval must be positive, got {config.interval:g}")
    if config.ttl < 0:
        raise ConfigError(f"--ttl must not be negative, got {config.ttl:g}")
