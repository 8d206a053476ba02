"""
Tests for the loan MCP tools and resources.

These tests cover:
1. Input validation
2. Success scenarios
3. Business-rule refusals reported in-band (isError + error kind)
4. Read-only resources
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from school_library.database.schema import Loan
from school_library.database.session import session_scope
from school_library.observability import get_config as get_observability_config
from school_library.observability.middleware import MCPInstrumentationMiddleware
from school_library.resources.loans import (
    get_loan_stats_handler,
    get_overdue_loans_handler,
    loan_resources,
)
from school_library.tools.loans import (
    check_can_borrow_handler,
    create_loan_handler,
    loan_tools,
    mark_loan_lost_handler,
    renew_loan_handler,
    return_loan_handler,
)

from ..conftest import INACTIVE_ID, SINGLE_ID, STUDENT_ID, TEACHER_ID, TRIPLE_ID


def text_of(result):
    return result["content"][0]["text"]


async def open_loan(person_id=STUDENT_ID, resource_id=TRIPLE_ID, quantity=1):
    result = await create_loan_handler(
        {"person_id": person_id, "resource_id": resource_id, "quantity": quantity}
    )
    assert not result.get("isError"), text_of(result)
    return result["data"]["loan"]["id"]


class TestCreateLoanTool:
    async def test_create_success(self, seeded):
        result = await create_loan_handler({"person_id": STUDENT_ID, "resource_id": TRIPLE_ID})

        assert "isError" not in result
        assert result["content"][0]["type"] == "text"
        loan = result["data"]["loan"]
        assert loan["status"] == "active"
        assert loan["quantity"] == 1
        assert text_of(result).startswith(f"Loan {loan['id']} created: 1 unit(s) of 'Don Quijote de la Mancha'")
        assert "for Ana García" in text_of(result)

    async def test_missing_arguments(self, seeded):
        result = await create_loan_handler({"person_id": STUDENT_ID})

        assert result["isError"] is True
        assert result["error"] == "validation_error"
        assert "Invalid create_loan parameters" in text_of(result)

    async def test_ineligible_person(self, seeded):
        result = await create_loan_handler({"person_id": INACTIVE_ID, "resource_id": TRIPLE_ID})

        assert result["isError"] is True
        assert result["error"] == "person_not_eligible"
        assert result["data"]["can_borrow"]["reason"] == "person inactive"

    async def test_no_stock(self, seeded):
        await open_loan(resource_id=SINGLE_ID)

        result = await create_loan_handler({"person_id": TEACHER_ID, "resource_id": SINGLE_ID})

        assert result["isError"] is True
        assert result["error"] == "insufficient_stock"
        assert "0 unit(s) available" in text_of(result)


class TestRenewLoanTool:
    async def test_renew_success(self, seeded):
        loan_id = await open_loan()

        result = await renew_loan_handler({"loan_id": loan_id, "additional_days": 5})

        assert "isError" not in result
        assert text_of(result).startswith(f"Loan {loan_id} renewed.")
        assert "1 renewal(s) left" in text_of(result)
        assert result["data"]["loan"]["renewal_count"] == 1

    async def test_invalid_loan_id(self, seeded):
        result = await renew_loan_handler({"loan_id": "not-a-loan"})
        assert result["error"] == "validation_error"

    async def test_unknown_loan(self, seeded):
        result = await renew_loan_handler({"loan_id": "loan_0000000000000000"})
        assert result["isError"] is True
        assert result["error"] == "loan_not_found"


class TestReturnLoanTool:
    async def test_return_then_return_again(self, seeded):
        loan_id = await open_loan()

        result = await return_loan_handler({"loan_id": loan_id, "return_observations": "OK"})
        assert "isError" not in result
        assert text_of(result) == f"Loan returned on time (loan {loan_id})."
        assert result["data"]["was_overdue"] is False
        assert result["data"]["loan"]["return_observations"] == "OK"

        again = await return_loan_handler({"loan_id": loan_id})
        assert again["isError"] is True
        assert again["error"] == "loan_already_returned"

    async def test_invalid_condition(self, seeded):
        loan_id = await open_loan()
        result = await return_loan_handler({"loan_id": loan_id, "resource_condition": "soggy"})
        assert result["error"] == "validation_error"


class TestMarkLoanLostTool:
    async def test_observations_required(self, seeded):
        loan_id = await open_loan()

        result = await mark_loan_lost_handler({"loan_id": loan_id, "observations": "  "})

        assert result["isError"] is True
        assert result["error"] == "observations_required"

    async def test_mark_lost(self, seeded):
        loan_id = await open_loan(quantity=2)

        result = await mark_loan_lost_handler({"loan_id": loan_id, "observations": "left on bus"})

        assert "isError" not in result
        assert result["data"]["loan"]["status"] == "lost"
        assert "2 unit(s) of 'Don Quijote de la Mancha' are out of circulation" in text_of(result)


class TestCheckCanBorrowTool:
    async def test_can_borrow(self, seeded):
        await open_loan()

        result = await check_can_borrow_handler({"person_id": STUDENT_ID})

        assert text_of(result) == f"Person {STUDENT_ID} can borrow (1/5 active loans)."
        assert result["data"]["can_borrow"] is True

    async def test_cannot_borrow(self, seeded):
        result = await check_can_borrow_handler({"person_id": INACTIVE_ID})

        assert "isError" not in result
        assert text_of(result) == f"Person {INACTIVE_ID} cannot borrow: person inactive."

    async def test_unknown_person(self, seeded):
        result = await check_can_borrow_handler({"person_id": "person_ghost"})
        assert result["error"] == "person_not_found"

    async def test_unexpected_error(self, seeded, monkeypatch):
        def explode(self, person_id):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr("school_library.loans.service.LoanService.can_borrow", explode)

        result = await check_can_borrow_handler({"person_id": STUDENT_ID})

        assert result["isError"] is True
        assert result["error"] == "internal_error"
        assert "disk on fire" in text_of(result)


class TestToolRegistry:
    def test_tools_declared(self):
        names = {tool["name"] for tool in loan_tools}
        assert names == {"create_loan", "renew_loan", "return_loan", "mark_loan_lost", "check_can_borrow"}
        for tool in loan_tools:
            assert tool["description"]
            assert "properties" in tool["inputSchema"]

    def test_server_registers_everything(self, test_config):
        from school_library import server  # noqa: PLC0415 - module import registers with FastMCP

        assert server.mcp.name == server.config.server_name
        assert len(server.all_tools) == 5
        assert len(server.all_resources) == 2

    def test_instrumentation_middleware_reads_observability_config(self):
        assert get_observability_config().enabled is True
        assert MCPInstrumentationMiddleware().enabled is True


class TestLoanResources:
    async def test_stats_resource(self, seeded):
        await open_loan()

        stats = await get_loan_stats_handler()

        assert stats["counts"]["total"] == 1
        assert stats["counts"]["active"] == 1
        assert stats["today"]["new_loans"] == 1

    async def test_overdue_resource(self, seeded):
        loan_id = await open_loan()
        await open_loan(person_id=TEACHER_ID)
        now = datetime.now()
        with session_scope() as session:
            session.execute(
                update(Loan)
                .where(Loan.id == loan_id)
                .values(loan_date=now - timedelta(days=20), due_date=now - timedelta(days=6))
            )

        page = await get_overdue_loans_handler()

        assert page["pagination"]["total"] == 1
        assert page["data"][0]["id"] == loan_id
        assert page["data"][0]["status"] == "overdue"
        assert page["data"][0]["days_overdue"] == 6

    def test_resources_declared(self):
        assert {resource["uri"] for resource in loan_resources} == {
            "library://loans/stats",
            "library://loans/overdue",
        }
