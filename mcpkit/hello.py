"""A minimal MCP server offering a single greeting tool."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mcpkit.protocol import CallToolResult, McpServer, Tool, run_stdio, text_content

logger = logging.getLogger(__name__)


class HelloServer(McpServer):
    """Server with one tool, ``hello``."""

    def __init__(self) -> None:
        super().__init__("mcp-hello")
        self.tool_router.add(Tool("hello", "Return a friendly greeting", self.hello))

    async def hello(self) -> CallToolResult:
        return CallToolResult([text_content("Hello, world!")])


def main(argv: list[str] | None = None) -> int:
    """Run the Hello MCP server over stdio."""
    parser = argparse.ArgumentParser(prog="mcp-hello", description="Run the Hello MCP server over stdio.")
    parser.parse_args(argv)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting mcp-hello server")
    try:
        asyncio.run(run_stdio(HelloServer()))
    except Exception:
        logger.exception("serving error")
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())