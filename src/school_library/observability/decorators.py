"""Decorators for tracing loan operations, MCP tools and MCP resources."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from ..database.exceptions import RepositoryException
from .metrics import record_refusal


def trace_operation(operation: str):
    """Trace a synchronous service operation.

    Business-rule refusals are recorded with their error kind; they are
    expected outcomes, not failures of the service.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with logfire.span(f"loans.{operation}", operation=operation) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", kwargs)
                try:
                    result = func(*args, **kwargs)
                except RepositoryException as e:
                    span.set_attribute("operation.success", False)
                    span.set_attribute("operation.error_kind", e.kind)
                    span.set_attribute("operation.status_code", e.status_code)
                    record_refusal(operation, e.kind)
                    raise
                span.set_attribute("operation.success", True)
                span.set_attribute(
                    "operation.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator


def trace_tool(tool_name: str):
    """Decorator to trace MCP tool execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category="loans",
            ) as span:
                start_time = datetime.now()

                if args and isinstance(args[0], dict):
                    _add_attributes(span, "input", args[0])

                result = await func(*args, **kwargs)

                # Handlers report failures in-band
                span.set_attribute("tool.success", not result.get("isError", False))
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                result = await func(*args, **kwargs)
                if hasattr(result, "__len__"):
                    span.set_attribute("result.item_count", len(result))
                return result

        return wrapper

    return decorator


def _add_attributes(span, prefix: str, data: dict[str, Any]):
    """Add scalar inputs as span attributes."""
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
