"""
PagePilot - Entry Point

Usage:
    pagepilot                          # MCP over stdio
    pagepilot --http --port 8931       # MCP over streamable HTTP
    pagepilot --caps network,storage   # Enable only some capabilities
    pagepilot --list-tools             # Show the enabled tools and exit
    pagepilot --verbose                # Debug logging on stderr
"""

import argparse
import asyncio
import sys

from pagepilot import __version__
from pagepilot.config import BROWSERS, KNOWN_CAPABILITIES, load_config, parse_capabilities


def _suppress_shutdown_noise(loop: asyncio.AbstractEventLoop):
    """Suppress 'Future exception was never retrieved' from Playwright during shutdown."""
    original_handler = loop.get_exception_handler()

    def handler(loop, context):
        msg = context.get("message", "")
        exc = context.get("exception")
        # Playwright driver disconnection noise on shutdown
        if exc and "Connection closed while reading from the driver" in str(exc):
            return
        if "Future exception was never retrieved" in msg:
            if exc and "driver" in str(exc).lower():
                return
        if original_handler:
            original_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    loop.set_exception_handler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagepilot",
        description="PagePilot - browser automation tools for MCP hosts",
        epilog="Examples:\n"
               "  pagepilot                          stdio transport (Claude Desktop, Cursor)\n"
               "  pagepilot --http                   streamable HTTP at http://127.0.0.1:8931/mcp\n"
               "  pagepilot --caps network --headed  core + network tools, visible browser\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"pagepilot {__version__}")
    parser.add_argument("--http", action="store_true", help="Serve streamable HTTP instead of stdio")
    parser.add_argument("--host", help="HTTP bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="HTTP bind port (default: 8931)")
    parser.add_argument(
        "--caps",
        help=f"Comma-separated capabilities to enable ({', '.join(KNOWN_CAPABILITIES)}). core is always on.",
    )
    parser.add_argument("--browser", choices=BROWSERS, help="Browser engine (default: chromium)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--cdp-endpoint", metavar="URL", help="Attach to a running Chromium over CDP")
    parser.add_argument("--user-data-dir", metavar="DIR", help="Persistent browser profile directory")
    parser.add_argument("--keep-browser-open", action="store_true", help="Keep the browser when the client disconnects")
    parser.add_argument("--no-snapshots", action="store_true", help="Never append page snapshots to results")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--list-tools", action="store_true", help="Print the enabled tools and exit")
    return parser


def apply_cli_overrides(config, args: argparse.Namespace):
    """CLI flags win over every config source."""
    config.update({
        "capabilities": parse_capabilities(args.caps) if args.caps else None,
        "browser": args.browser,
        "headless": False if args.headed else None,
        "cdp_endpoint": args.cdp_endpoint,
        "user_data_dir": args.user_data_dir,
        "keep_browser_open": True if args.keep_browser_open else None,
        "snapshots": False if args.no_snapshots else None,
        "host": args.host,
        "port": args.port,
    })


def print_tools(config):
    """Rich table of the capability-filtered tool set."""
    from rich.console import Console
    from rich.table import Table

    from pagepilot.tools import create_tool_registry

    tools = create_tool_registry().build_active_set(config.capabilities)
    table = Table(title=f"PagePilot tools ({len(tools)})")
    table.add_column("Capability", style="cyan")
    table.add_column("Tool", style="bold")
    table.add_column("Description")
    for descriptor in tools:
        table.add_row(descriptor.capability, descriptor.name, descriptor.description)
    Console().print(table)


async def async_main(argv=None):
    """Async main entry point."""
    _suppress_shutdown_noise(asyncio.get_running_loop())

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
        apply_cli_overrides(config, args)
    except ValueError as e:
        parser.error(str(e))

    if args.list_tools:
        print_tools(config)
        return

    from pagepilot.logging_config import setup_logging
    logger = setup_logging(verbose=args.verbose)
    logger.info(f"PagePilot {__version__} starting (capabilities: {', '.join(sorted(config.capabilities))})")

    from pagepilot.mcp_server import PagePilotServer, run_http, run_stdio

    app = PagePilotServer(config)
    try:
        if args.http:
            await run_http(app)
        else:
            await run_stdio(app)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"[!] Fatal error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await app.shutdown()


def main():
    """Sync entry point for console_scripts (pyproject.toml)."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
