"""School Library server entry points.

Two surfaces share one database and one loan service:
- MCP (FastMCP): tools to create/renew/return/lose loans, resources for
  statistics and overdue loans. ``school-library-mcp``
- REST (FastAPI on uvicorn): the loan endpoints. ``school-library-api``

Logs go to stderr so stdout stays clean for the stdio transport.
"""

import logging
import signal
import sys
from typing import Any

import uvicorn
from fastmcp import FastMCP

from .config import get_config
from .observability import initialize_observability
from .observability.middleware import MCPInstrumentationMiddleware
from .resources import all_resources
from .tools import all_tools

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "School Library loan service. Use check_can_borrow before lending, "
        "create_loan to lend units of a resource, renew_loan / return_loan / "
        "mark_loan_lost to move a loan through its lifecycle, and the "
        "library://loans/* resources for statistics and overdue loans."
    ),
)

mcp.add_middleware(MCPInstrumentationMiddleware())

for resource in all_resources:
    logger.debug("Registering resource: %s with URI: %s", resource["name"], resource["uri"])
    try:
        mcp.resource(
            uri=resource["uri"],
            name=resource["name"],
            description=resource["description"],
            mime_type=resource["mime_type"],
        )(resource["handler"])
    except Exception:
        logger.exception("Failed to register resource %s", resource["name"])
        raise

logger.info("Registered %d resources", len(all_resources))

for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    try:
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])
    except Exception:
        logger.exception("Failed to register tool %s", tool["name"])
        raise

logger.info("Registered %d tools", len(all_tools))


def _configure_logging() -> None:
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def run_mcp_server() -> None:
    """Run the MCP server on the configured transport."""
    logger.info(
        "Starting %s v%s on %s transport",
        config.server_name,
        config.server_version,
        config.transport,
    )

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if config.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="streamable-http", host=config.http_host, port=config.http_port)


def main() -> None:
    """MCP entry point (``school-library-mcp``)."""
    _configure_logging()
    initialize_observability()
    try:
        logger.info("=" * 60)
        logger.info("School Library MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Transport: %s", config.transport)
        logger.info("Database: %s", config.get_database_url())
        logger.info("=" * 60)
        run_mcp_server()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


def serve_api() -> None:
    """REST entry point (``school-library-api``)."""
    from .api import create_app

    _configure_logging()
    initialize_observability()
    logger.info("Starting REST API on http://%s:%d", config.http_host, config.http_port)
    uvicorn.run(create_app(), host=config.http_host, port=config.http_port, log_level="info")


if __name__ == "__main__":
    main()
