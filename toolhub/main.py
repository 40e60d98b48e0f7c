"""
Command-line entry point: inspect and manage tool providers
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from toolhub.config import get_providers
from toolhub.core.errors import ToolhubError
from toolhub.core.manager import load_all
from toolhub.core.mcp_client import DEFAULT_CONNECT_TIMEOUT
from toolhub.core.registry import CapabilityRegistry
from toolhub.lifecycle import ShutdownHandler
from toolhub.servers import ProviderService, ProviderStatus

logger = logging.getLogger(__name__)
console = Console()


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("mcp").setLevel(logging.WARNING)


def render_status(status: ProviderStatus) -> None:
    editable = "editable" if status.editable else "read-only"
    console.print(f"[bold]Providers[/bold] (source: {status.source}, {editable})")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Provider")
    table.add_column("Type")
    table.add_column("Enabled")
    table.add_column("Tools")
    table.add_column("Error", style="red")
    for provider in status.servers:
        tools = status.tools_by_server.get(provider.name, [])
        table.add_row(
            provider.name,
            provider.type,
            "yes" if provider.enabled else "no",
            ", ".join(tools) if tools else "-",
            status.server_errors.get(provider.name, ""),
        )
    console.print(table)
    console.print(f"Total tools: {status.total_tools}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolhub", description="Inspect and manage MCP tool providers"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_CONNECT_TIMEOUT,
        help="Seconds allowed for each provider to connect",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Load providers and show their tools")
    status_parser.add_argument("--json", action="store_true", help="Print JSON output")

    subparsers.add_parser("list", help="Show configured providers without connecting")

    add_parser = subparsers.add_parser("add", help="Add a provider from a JSON object")
    add_parser.add_argument("definition")

    update_parser = subparsers.add_parser("update", help="Replace a provider from a JSON object")
    update_parser.add_argument("definition")

    remove_parser = subparsers.add_parser("remove", help="Remove a provider by name")
    remove_parser.add_argument("name")

    subparsers.add_parser("serve", help="Keep providers connected until interrupted")
    return parser


def _parse_definition(raw: str) -> dict:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise SystemExit(f"Provider definition is not valid JSON: {e}")


async def run(args: argparse.Namespace) -> int:
    registry = CapabilityRegistry(lambda: load_all(get_providers(), timeout=args.timeout))
    service = ProviderService(registry=registry)

    try:
        if args.command == "list":
            listing = service.list_providers()
            console.print_json(listing.model_dump_json())

        elif args.command == "status":
            status = await service.status()
            if args.json:
                console.print_json(status.model_dump_json())
            else:
                render_status(status)

        elif args.command == "add":
            provider = await service.add_provider(_parse_definition(args.definition))
            console.print(f"[green]Added provider {provider.name}[/green]")

        elif args.command == "update":
            provider = await service.update_provider(_parse_definition(args.definition))
            console.print(f"[green]Updated provider {provider.name}[/green]")

        elif args.command == "remove":
            name = await service.remove_provider(args.name)
            console.print(f"[green]Removed provider {name}[/green]")

        elif args.command == "serve":
            handler = ShutdownHandler(registry)
            handler.install()
            render_status(await service.status())
            console.print("Providers connected. Press Ctrl+C to stop.")
            await handler.wait()
            return 0

    except ToolhubError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        await registry.invalidate()
    return 0


def main() -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args()
    configure_logging(args.verbose)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
