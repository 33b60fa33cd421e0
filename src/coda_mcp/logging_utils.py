"""Logging setup shared by the stdio and HTTP entrypoints."""

import logging
import sys
from typing import TextIO

from coda_mcp.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
REDACTED = "[REDACTED]"


class TokenRedactingFilter(logging.Filter):
    """Scrub the API token from every record passing through a handler."""

    def __init__(self, secret: str) -> None:
        super().__init__()
        self._secret = secret

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secret:
            return True
        message = record.getMessage()
        if self._secret in message:
            record.msg = message.replace(self._secret, REDACTED)
            record.args = None
        return True


def configure_logging(settings: Settings, stream: TextIO = sys.stderr) -> None:
    """Configure root logging and attach the token filter to every handler.

    Logs go to stderr by default because stdout carries the MCP stdio channel.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
        stream=stream,
        force=True,
    )
    redactor = TokenRedactingFilter(settings.api_token.get_secret_value())
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)
    # httpx logs every request URL at INFO; keep that behind DEBUG.
    if settings.log_level != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
