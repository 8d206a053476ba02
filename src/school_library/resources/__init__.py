"""School Library MCP Resources Package

Read-only loan views addressed by ``library://`` URIs. State changes go
through the tools in ``school_library.tools``.
"""

from .loans import loan_resources

all_resources = loan_resources

__all__ = ["all_resources", "loan_resources"]
