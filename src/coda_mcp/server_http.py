"""HTTP (SSE) transport entrypoint for the Coda MCP server.

This module provides the main entrypoint for running the MCP server
over HTTP with server-sent events via uvicorn.
"""

import argparse
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from mcp.server.sse import SseServerTransport
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from coda_mcp.client import CodaClient
from coda_mcp.config import ConfigError, Settings, get_settings
from coda_mcp.logging_utils import configure_logging
from coda_mcp.mcp_app import create_mcp_server, setup_mcp_app

logger = logging.getLogger(__name__)


def build_app(settings: Settings) -> Starlette:
    """Create the Starlette ASGI application for the given settings.

    Args:
        settings: Application settings.

    Returns:
        Configured Starlette application.
    """
    mcp_server = create_mcp_server()
    client = CodaClient(settings)
    setup_mcp_app(mcp_server, settings, client)

    # Path is where clients POST messages
    sse_transport = SseServerTransport("/mcp/messages/")

    async def handle_sse(request: Request) -> Response:
        """Handle SSE connections for MCP.

        The MCP SDK needs the raw ASGI send callable, which Starlette only
        exposes as request._send. Returning Response() avoids a NoneType
        error when the client disconnects.
        """
        try:
            async with sse_transport.connect_sse(
                request.scope, request.receive, request._send
            ) as streams:
                await mcp_server.run(
                    streams[0],
                    streams[1],
                    mcp_server.create_initialization_options(),
                )
        except Exception:
            logger.exception("Unhandled exception in SSE handler")
        return Response()

    async def health_check(_request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "healthy",
                "service": "coda_mcp",
                "coda_url": settings.base_url,
            }
        )

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        logger.info("Coda MCP server starting (HTTP transport)")
        logger.info("Connecting to Coda API at %s", settings.base_url)
        try:
            yield
        finally:
            await client.close()
            logger.info("Server shutdown complete")

    return Starlette(
        debug=False,
        routes=[
            Route("/health", health_check, methods=["GET"]),
            Route("/mcp", handle_sse, methods=["GET"]),
            Mount("/mcp/messages/", app=sse_transport.handle_post_message),
        ],
        lifespan=lifespan,
    )


def create_app() -> Starlette:
    """uvicorn factory: build the app from environment settings."""
    settings = get_settings()
    configure_logging(settings)
    return build_app(settings)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(description="Coda MCP server with HTTP transport")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8765,
        help="Port to bind to (default: 8765)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entrypoint for HTTP transport."""
    args = parse_args()

    # Fail fast on bad configuration before uvicorn starts importing the factory.
    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    configure_logging(settings)

    logger.info("Starting server on %s:%d", args.host, args.port)

    try:
        uvicorn.run(
            "coda_mcp.server_http:create_app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            factory=True,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
    except Exception as e:
        logger.exception("Server failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
