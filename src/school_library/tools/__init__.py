"""MCP tools for the School Library loan service.

Tools change state (open, renew, return, lose loans); read-only views
live in ``school_library.resources``.
"""

from .loans import loan_tools

all_tools = loan_tools

__all__ = ["all_tools", "loan_tools"]
