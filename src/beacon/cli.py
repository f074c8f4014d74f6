"""CLI entry point for Beacon."""

import argparse
import json
import os
import sys
from typing import Callable, Optional

from jinja2 import Environment, PackageLoader

from .config import SidecarConfig, load_config, merge_cli_args, populate, validate
from .coordinator import ShutdownCoordinator
from .errors import BeaconError, ConfigError, ProcessError, ResolutionError
from .formatting import join_key_path
from .heartbeat import HeartbeatRegistry, RegistryState
from .registry import EtcdClient
from .supervisor import Command


USAGE_EPILOG = """\
Updates --key in etcd periodically until either exited or a monitored process exits.
To monitor an external command add the command arguments after all beacon options,
e.g. beacon --key process -- my_script.sh arg1 arg2
stdin, stdout and stderr are passed through from the monitored command.
"""


def _get_template_env() -> Environment:
    return Environment(
        loader=PackageLoader("beacon", "templates"),
        keep_trailing_newline=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beacon",
        description="Beacon: keep a service registered in etcd",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--etcd", type=str,
        help="The url of the etcd instance to connect to (default: http://127.0.0.1:4001)",
    )
    parser.add_argument(
        "--api", type=str, dest="api_root",
        help="The root value for any key path (default: /v2/keys)",
    )
    parser.add_argument(
        "--key", type=str,
        help="The key path to post to. %%H is replaced with the host and %%P with the port, "
             "e.g. process/%%H:%%P",
    )
    parser.add_argument(
        "--value", type=str,
        help="The value to send to etcd. %%H, %%P, %%T (tag) and %%S (start time) are replaced. "
             "If not set, a JSON object with the host and port is used.",
    )
    parser.add_argument(
        "--host", type=str,
        help="The address identifying this service. Determined automatically if not set.",
    )
    parser.add_argument("--port", type=int, help="A port, if any, registered along with the host")
    parser.add_argument(
        "--interface", type=str,
        help="The network interface used to infer the address of the local host",
    )
    parser.add_argument(
        "--remote", type=str,
        help="The address used to infer the address of the local host (default: the etcd url)",
    )
    parser.add_argument("--tag", type=str, help="A tag stored in the default value")
    parser.add_argument(
        "--ttl", type=float,
        help="Seconds the key stays alive after no updates are received (default: 30)",
    )
    parser.add_argument(
        "--interval", type=float,
        help="Seconds between each update to etcd (default: 10)",
    )
    parser.add_argument(
        "--request-timeout", type=float, dest="request_timeout",
        help="Seconds to wait for each etcd request (default: 10)",
    )
    parser.add_argument(
        "--propagate-exit-code", action="store_true", dest="propagate_exit_code",
        default=None,
        help="Exit with the monitored command's status when it exits on its own",
    )
    parser.add_argument(
        "--list", action="store_true", dest="list_services",
        help="List the services registered under --key and exit",
    )
    parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format for --list (default: text)",
    )
    parser.add_argument(
        "command", nargs=argparse.REMAINDER,
        help="Command to monitor (put after --)",
    )
    return parser


def _build_config(args) -> SidecarConfig:
    """Build a SidecarConfig from a config file + CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = SidecarConfig()
    merge_cli_args(config, args)
    return config


def _format_services(services, fmt: str) -> str:
    """Format a list of ServiceInfo objects for output."""
    if fmt == "json":
        return json.dumps([s.to_dict() for s in services], indent=2) + "\n"
    template = _get_template_env().get_template("services.txt.j2")
    return template.render(services=services)


def list_services(config: SidecarConfig, fmt: str = "text") -> str:
    """Fetch and format the services registered under the configured key."""
    if config.key_path or "%H" in config.key or "%P" in config.key:
        key_path = populate(config).key_path
    else:
        key_path = join_key_path(config.api_root, config.key)
    client = EtcdClient(config.etcd, timeout=config.request_timeout)
    return _format_services(client.list_services(key_path), fmt)


def run(
    config: SidecarConfig,
    command_args: list[str],
    exit_func: Callable[[int], None] = os._exit,
) -> int:
    """Register the service and block until the monitored command (or the registry) finishes."""
    try:
        config = populate(config)
    except ResolutionError as exc:
        print(
            "Error retrieving address. Try using a different --interface or --remote, "
            f"or set it manually with --host: {exc}",
            file=sys.stderr,
        )
        return 1
    try:
        validate(config)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(
        f"Etcd: {config.etcd} Key: {config.key_path} Value: {config.value} "
        f"TTL: {config.ttl:g}s UpdateInterval: {config.interval:g}s",
        file=sys.stderr,
    )

    registry = HeartbeatRegistry(
        config.etcd, config.key_path, config.value,
        ttl=config.ttl, interval=config.interval,
        request_timeout=config.request_timeout,
    )
    command = Command(command_args) if command_args else None
    coordinator = ShutdownCoordinator(registry, command, exit_func=exit_func)
    coordinator.start()

    try:
        try:
            registry.start()
        except RuntimeError:
            # A signal stopped the registry before it started.
            return 0
        if command is None:
            print("No command specified. Running indefinitely.", file=sys.stderr)
            registry.wait()
            return 0

        if registry.state is not RegistryState.RUNNING:
            return 0
        print(f"Monitoring command: {command}", file=sys.stderr)
        try:
            command.start()
        except ProcessError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            registry.stop()
            return 1
        command.wait()
        registry.stop()
        if config.propagate_exit_code and command.returncode:
            # Negative return codes mean the child died from a signal.
            return command.returncode if command.returncode > 0 else 128 - command.returncode
        return 0
    finally:
        coordinator.close()


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    command_args = list(args.command or [])
    # Strip leading '--' separator that REMAINDER captures
    if command_args and command_args[0] == "--":
        command_args = command_args[1:]

    config = _build_config(args)

    if not config.etcd or not (config.key or config.key_path):
        print("Error: --etcd and --key are required.", file=sys.stderr)
        parser.print_usage(sys.stderr)
        sys.exit(1)

    if args.list_services:
        try:
            output = list_services(config, args.format)
        except BeaconError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        sys.stdout.write(output)
        return

    sys.exit(run(config, command_args))
