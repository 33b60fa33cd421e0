"""stdio transport entrypoint for the Coda MCP server.

This module provides the main entrypoint for running the MCP server
using stdio transport, suitable for use with Claude Desktop and similar tools.
"""

import asyncio
import logging
import sys

from mcp.server.stdio import stdio_server

from coda_mcp.client import CodaClient
from coda_mcp.config import ConfigError, Settings, get_settings
from coda_mcp.logging_utils import configure_logging
from coda_mcp.mcp_app import create_mcp_server, setup_mcp_app

logger = logging.getLogger(__name__)


async def run_server(settings: Settings) -> None:
    """Run the MCP server with stdio transport."""
    logger.info("Starting Coda MCP server (stdio transport)")
    logger.info("Connecting to Coda API at %s", settings.base_url)

    server = create_mcp_server()
    client = CodaClient(settings)

    try:
        setup_mcp_app(server, settings, client)

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await client.close()
        logger.info("Server shutdown complete")


def main() -> None:
    """Main entrypoint for stdio transport."""
    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(settings)

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
    except Exception as e:
        logger.exception("Server failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
