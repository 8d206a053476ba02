"""FastMCP middleware for instrumentation."""

from typing import Any

from fastmcp.server.middleware import Middleware, MiddlewareContext

from . import get_config, logfire


class MCPInstrumentationMiddleware(Middleware):
    """Middleware to trace all MCP protocol operations."""

    def __init__(self):
        self.enabled = get_config().enabled

    async def on_message(self, context: MiddlewareContext, call_next) -> Any:
        if not self.enabled:
            return await call_next(context)

        method = context.method or "unknown"
        operation_type = self._get_operation_type(method)

        with logfire.span(
            f"mcp.{operation_type}.{method}",
            _span_name=f"MCP {method}",
            mcp_method=method,
            mcp_operation_type=operation_type,
            mcp_source=getattr(context, "source", "unknown"),
        ) as span:
            message = getattr(context, "message", None)
            if hasattr(message, "name"):
                span.set_attribute("tool.name", message.name)
            elif hasattr(message, "uri"):
                span.set_attribute("resource.uri", str(message.uri))

            try:
                result = await call_next(context)
            except Exception as e:
                span.set_attribute("mcp.status", "error")
                span.set_attribute("error.type", type(e).__name__)
                span.set_attribute("error.message", str(e))
                raise

            span.set_attribute("mcp.status", "success")
            return result

    @staticmethod
    def _get_operation_type(method: str) -> str:
        """Categorize MCP method into operation type."""
        if method.startswith("resources/"):
            return "resource"
        if method.startswith("tools/"):
            return "tool"
        return "system"
