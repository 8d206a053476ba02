"""
School Library Loans package.

This package implements the loan lifecycle of a school library:
deciding who may borrow, keeping per-resource stock honest under
concurrent requests, moving loans through their states, and reporting.

Key Components:
- loans: eligibility, availability, state machine, overdue math, statistics
- database: SQLAlchemy schema, session management, gateways and queries
- models: Pydantic models for requests, responses and loan views
- config: Configuration management with Pydantic v2
- api: REST endpoints (FastAPI)
- tools / resources: MCP surface served by FastMCP
"""

__version__ = "0.1.0"

from . import database

__all__ = [
    "__version__",
    "database",
]
