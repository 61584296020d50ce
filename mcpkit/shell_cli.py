"""Command-line entry point for the shell MCP server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mcpkit.protocol import run_stdio
from mcpkit.shell import ShellServer

logger = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcp-shell", description="Run the Shell MCP server over stdio.")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--container", help="Run commands inside a Podman container")
    mode.add_argument(
        "--unsafe-local-access",
        action="store_true",
        help="Run commands inside a local shell. Unsafe.",
    )
    parser.add_argument("--workdir", required=True, help="Working directory for command execution")
    parser.add_argument("--trace", action="store_true", help="Show trace")
    return parser


async def _serve(args: argparse.Namespace) -> None:
    if args.container is not None:
        server = ShellServer(args.workdir, container=args.container)
    else:
        server = ShellServer(args.workdir)
    await run_stdio(server)


def main(argv: list[str] | None = None) -> int:
    """Run the Shell MCP server over stdio."""
    args = _parser().parse_args(argv)
    if args.trace:
        logging.basicConfig(
            stream=sys.stderr,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logger.info("Starting mcp-shell server")
    try:
        asyncio.run(_serve(args))
    except Exception:
        logger.exception("serving error")
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())