"""
Loan lifecycle for the School Library.

- availability: per-resource unit accounting with an atomic reserve
- eligibility: whether a person may open a new loan
- state_machine: create / renew / return / mark-as-lost transitions
- overdue: pure read-time overdue derivation
- statistics: read-only aggregates
- service: the transactional facade used by the REST API and MCP tools

Components are imported from their modules, e.g.
``from school_library.loans.service import LoanService``.
"""
