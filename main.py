from __future__ import annotations

import argparse
import asyncio
import json
import logging

from serverdock.config import get_settings
from serverdock.container import ServiceContainer

logger = logging.getLogger("main")


def parse_args():
    parser = argparse.ArgumentParser(description="ServerDock: remote server connections and workers")
    parser.add_argument("--config", default=None, help="Server config YAML (default: SERVERDOCK_CONFIG_PATH)")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the MCP tool server on stdio")
    sub.add_parser("status", help="Probe configured servers and print their status")
    args = parser.parse_args()
    if args.command is None:
        args.command = "serve"
    return args


def build_container(args) -> ServiceContainer:
    settings = get_settings()
    if args.config:
        settings = settings.model_copy(update={"config_path": args.config})
    return ServiceContainer.build(settings)


async def status_async(container: ServiceContainer) -> None:
    try:
        await container.registry.update_status()
        servers = [
            {"type": s.type, "url": s.endpoint.origin, "label": s.label, "isRunning": s.is_running}
            for s in container.registry.get_servers()
        ]
        print(json.dumps(servers, indent=2))
    finally:
        await container.dispose()


def main():
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    container = build_container(args)

    if args.command == "status":
        asyncio.run(status_async(container))
        return

    from serverdock.mcp_server import create_mcp_server

    logger.info("Starting MCP server on stdio")
    try:
        create_mcp_server(container).run()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
