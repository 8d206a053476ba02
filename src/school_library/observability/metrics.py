"""Custom metrics for the School Library loan service."""

import logfire

loan_events = logfire.metric_counter(
    "library.loans.events", description="Loan lifecycle events (created/renewed/returned/lost)"
)

loan_refusals = logfire.metric_counter(
    "library.loans.refusals", description="Loan operations refused by a business rule"
)

units_on_loan = logfire.metric_histogram(
    "library.loans.quantity", unit="units", description="Units taken per new loan"
)


def record_loan_event(event: str, quantity: int = 1):
    """Record a loan lifecycle event."""
    loan_events.add(1, {"event": event})
    if event == "loan.created":
        units_on_loan.record(quantity)


def record_refusal(operation: str, kind: str):
    """Record a refused loan operation by error kind."""
    loan_refusals.add(1, {"operation": operation, "kind": kind})
