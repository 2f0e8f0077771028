"""Entry point for `python -m container_desktop_entries` / `container-desktop-entries`.

Subcommands:
    container-desktop-entries [serve]     Sync configured containers from the host (default)
    container-desktop-entries agent       Publish applications from inside a container
    container-desktop-entries init-config Write a starter config.toml
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from container_desktop_entries import __version__
from container_desktop_entries.errors import ConfigError
from container_desktop_entries.logger import logger, set_level
from container_desktop_entries.runtime import RuntimeKind

EXIT_CONFIG_ERROR = 2


def _add_common_options(parser: argparse.ArgumentParser, *, suppress: bool = False) -> None:
    # Subcommands repeat the options with SUPPRESS defaults so a value given
    # before the subcommand is not reset by the subparser.
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=argparse.SUPPRESS if suppress else None,
        help="Path to config.toml or a legacy containers.conf "
        "(default: $XDG_CONFIG_HOME/container-desktop-entries/config.toml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=argparse.SUPPRESS if suppress else False,
        help="Exit after the initial sync instead of waiting for shutdown",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="container-desktop-entries",
        description="Show applications from containers in the host's launcher",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_common_options(parser)

    sub = parser.add_subparsers(dest="command")
    serve = sub.add_parser("serve", help="Sync every configured container (default)")
    _add_common_options(serve, suppress=True)

    agent = sub.add_parser("agent", help="Publish this container's applications")
    _add_common_options(agent, suppress=True)
    agent.add_argument("-n", "--name", required=True, help="Container name (used as owner)")
    agent.add_argument(
        "-k",
        "--kind",
        required=True,
        choices=[k.value for k in RuntimeKind if k is not RuntimeKind.UNKNOWN],
        help="Container runtime kind",
    )

    init = sub.add_parser("init-config", help="Write a default config.toml")
    _add_common_options(init, suppress=True)
    return parser


def _init_config(path: Path | None) -> int:
    from container_desktop_entries.config import default_config_path, write_default_config

    target = path or default_config_path()
    try:
        write_default_config(target)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    print(f"Wrote {target}")
    return 0


def _serve(args: argparse.Namespace) -> int:
    from container_desktop_entries.app import run_server
    from container_desktop_entries.config import load_settings

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        logger.error("Configuration error", err=str(exc))
        return EXIT_CONFIG_ERROR
    set_level(settings.logging.level)
    logger.info("Running as server", containers=[c.name for c in settings.containers])
    return asyncio.run(run_server(settings, once=args.once))


def _agent(args: argparse.Namespace) -> int:
    from container_desktop_entries.app import run_agent
    from container_desktop_entries.config import get_settings, load_settings

    try:
        # The agent needs no container list, so a missing config is fine
        settings = load_settings(args.config) if args.config else get_settings()
    except (ConfigError, ValueError) as exc:
        logger.error("Configuration error", err=str(exc))
        return EXIT_CONFIG_ERROR
    set_level(settings.logging.level)
    logger.info("Running as agent", container=args.name, kind=args.kind)
    return asyncio.run(
        run_agent(settings, args.name, RuntimeKind.parse(args.kind), once=args.once)
    )


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    match args.command:
        case "init-config":
            return _init_config(args.config)
        case "agent":
            return _agent(args)
        case _:
            return _serve(args)


if __name__ == "__main__":
    sys.exit(main())
