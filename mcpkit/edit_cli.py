"""Command-line entry point for the file-editing MCP server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mcpkit.edit import DEFAULT_MOUNT_POINT, FsServer
from mcpkit.protocol import run_stdio

logger = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcp-edit", description="Run the Edit MCP server over stdio.")
    parser.add_argument(
        "workspace_root",
        nargs="?",
        default=".",
        help="Workspace root directory (default: current directory)",
    )
    parser.add_argument(
        "mount_point",
        nargs="?",
        default=DEFAULT_MOUNT_POINT,
        help=f"Mount point path used in responses (default: `{DEFAULT_MOUNT_POINT}`)",
    )
    parser.add_argument("--trace", action="store_true", help="Show trace")
    parser.add_argument(
        "--allow-modification", action="store_true", help="Allow tools that modify files"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the Edit MCP server over stdio."""
    args = _parser().parse_args(argv)
    if args.trace:
        logging.basicConfig(
            stream=sys.stderr,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logger.info("Starting mcp-edit server")
    server = FsServer(args.workspace_root, args.mount_point)
    if not args.allow_modification:
        server.disable_modification_tools()
    try:
        asyncio.run(run_stdio(server))
    except Exception:
        logger.exception("serving error")
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())