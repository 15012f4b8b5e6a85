"""
Tests for function dispatch over the hospital data store.
"""

from unittest.mock import AsyncMock

import pytest

from voicebridge.bot.function_handlers import (
    HANDLER_ERROR_MESSAGE,
    UNKNOWN_FUNCTION_MESSAGE,
    FunctionHandler,
)
from voicebridge.config.prompts import EMERGENCY_CONTACTS, FUNCTION_TOOLS


@pytest.fixture
def handler(data_store):
    return FunctionHandler(data_store)


def test_every_declared_tool_has_a_handler(handler):
    handler.validate_tools()
    assert set(handler.function_registry) == {tool["name"] for tool in FUNCTION_TOOLS}


def test_validate_tools_rejects_undeclared_handler(handler):
    tools = FUNCTION_TOOLS + [{"type": "function", "name": "book_appointment"}]
    with pytest.raises(ValueError, match="book_appointment"):
        handler.validate_tools(tools)


@pytest.mark.asyncio
@pytest.mark.parametrize("name", [tool["name"] for tool in FUNCTION_TOOLS] + ["no_such_tool"])
async def test_message_always_present(handler, name):
    result = await handler.dispatch(name, {})
    assert isinstance(result["success"], bool)
    assert result["message"]


@pytest.mark.asyncio
async def test_unknown_function(handler):
    result = await handler.dispatch("book_appointment", {"doctorId": "doc-001"})
    assert result == {"success": False, "message": UNKNOWN_FUNCTION_MESSAGE}


@pytest.mark.asyncio
async def test_handler_exception_is_contained(handler):
    handler.function_registry["search_doctors"] = AsyncMock(side_effect=RuntimeError("boom"))

    result = await handler.dispatch("search_doctors", {})

    assert result == {"success": False, "message": HANDLER_ERROR_MESSAGE}


@pytest.mark.asyncio
async def test_non_dict_arguments_treated_as_empty(handler):
    result = await handler.dispatch("transfer_to_operator", ["Billing"])
    assert result["department"] == "General"


@pytest.mark.asyncio
async def test_store_failure_offers_human_fallback(handler):
    handler.data_store.get_doctors = AsyncMock(side_effect=RuntimeError("store down"))

    result = await handler.dispatch("search_doctors", {"specialization": "Cardiology"})

    assert result["success"] is False
    assert "appointments desk" in result["message"]


@pytest.mark.asyncio
async def test_search_doctors_by_specialization(handler):
    result = await handler.dispatch("search_doctors", {"specialization": "cardio"})

    assert result["success"] is True
    assert result["count"] == 2
    assert "Dr. Rajesh Kumar" in result["message"]
    assert "in Cardiology at Bandra West" in result["message"]


@pytest.mark.asyncio
async def test_search_doctors_by_branch(handler):
    result = await handler.dispatch(
        "search_doctors", {"specialization": "Neurology", "locationBranch": "bandra"}
    )
    assert result["count"] == 2


@pytest.mark.asyncio
async def test_search_doctors_none_found(handler):
    result = await handler.dispatch("search_doctors", {"doctorName": "Nobody"})
    assert result["success"] is False
    assert "general physician" in result["message"]


@pytest.mark.asyncio
async def test_get_departments(handler):
    result = await handler.dispatch("get_departments", {})
    assert result["success"] is True
    assert result["count"] == 10
    assert "Cardiology (Floor 2)." in result["message"]


@pytest.mark.asyncio
async def test_get_hospital_locations_unknown_branch(handler):
    result = await handler.dispatch("get_hospital_locations", {"branch": "Pune"})
    assert result["success"] is False
    assert "Bandra West" in result["message"]


@pytest.mark.asyncio
async def test_get_contact_details_by_category(handler):
    result = await handler.dispatch("get_contact_details", {"category": "appointments"})
    assert result["success"] is True
    assert "+91-22-2640-2000" in result["message"]


@pytest.mark.asyncio
async def test_check_doctor_availability(handler):
    result = await handler.dispatch(
        "check_doctor_availability", {"doctorId": "doc-001", "dayOfWeek": "1"}
    )
    assert result["success"] is True
    assert "Monday: 09:00 - 13:00 at Bandra West" in result["message"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "emergency_type, number",
    [
        ("cardiac", EMERGENCY_CONTACTS["cardiac"]),
        ("trauma", EMERGENCY_CONTACTS["trauma"]),
        ("stroke", EMERGENCY_CONTACTS["main"]),
        (None, EMERGENCY_CONTACTS["main"]),
    ],
)
async def test_emergency_protocol_destination(handler, emergency_type, number):
    result = await handler.dispatch("emergency_protocol", {"emergencyType": emergency_type})

    assert result["action"] == "TRANSFER_EMERGENCY"
    assert result["emergency"] is True
    assert result["transferTo"] == number
    assert result["contactNumber"] == number


@pytest.mark.asyncio
async def test_transfer_to_operator(handler):
    result = await handler.dispatch(
        "transfer_to_operator", {"reason": "billing", "department": "Billing"}
    )
    assert result["action"] == "TRANSFER_OPERATOR"
    assert result["department"] == "Billing"
    assert "Billing" in result["message"]


@pytest.mark.asyncio
async def test_search_hospital_info(handler):
    result = await handler.dispatch("search_hospital_info", {"query": "visiting hours"})
    assert result["success"] is True
    assert "4:00 PM - 6:00 PM" in result["message"]


@pytest.mark.asyncio
async def test_search_hospital_info_empty_query(handler):
    result = await handler.dispatch("search_hospital_info", {"query": "   "})
    assert result["success"] is False
    assert "information desk" in result["message"]
