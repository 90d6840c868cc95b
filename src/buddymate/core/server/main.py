"""BuddyMate server entry point: ``python -m buddymate.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from buddymate.core.config.settings import get_settings
from buddymate.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the BuddyMate MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.buddymate_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.buddymate_allow_insecure_bind and not _is_loopback_host(settings.buddymate_host):
        raise RuntimeError(
            "Refusing to bind the BuddyMate server to a non-loopback host without an auth layer. "
            "Set BUDDYMATE_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting BuddyMate data layer server on %s:%d",
        settings.buddymate_host,
        settings.buddymate_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.buddymate_host,
        port=settings.buddymate_port,
    )


if __name__ == "__main__":
    run()
