"""
Function dispatch for model-issued function calls.

``FunctionHandler`` maps each declared tool name to a coroutine that queries the
hospital data store and returns ``{"success": bool, "message": str, ...}``. The
message is spoken to a live caller, so it is present on every path, including
unknown names and internal errors, and failure messages offer a human fallback.
Two handlers also set ``action`` so the bridge can execute a transfer.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from voicebridge.config.constants import (
    ACTION_TRANSFER_EMERGENCY,
    ACTION_TRANSFER_OPERATOR,
    LOGGER_NAME,
)
from voicebridge.config.prompts import EMERGENCY_CONTACTS, FUNCTION_TOOLS
from voicebridge.services.data_store import HospitalDataStore

logger = logging.getLogger(LOGGER_NAME)

FunctionResult = Dict[str, Any]
HandlerFunc = Callable[[Dict[str, Any]], Awaitable[FunctionResult]]

UNKNOWN_FUNCTION_MESSAGE = (
    "I'm not sure how to handle that request. Let me connect you to our operator."
)
HANDLER_ERROR_MESSAGE = (
    "I encountered an error processing your request. Let me transfer you to our operator."
)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Emergency types with a dedicated line; everything else goes to the main number
EMERGENCY_TYPE_CONTACTS = {
    "cardiac": EMERGENCY_CONTACTS["cardiac"],
    "trauma": EMERGENCY_CONTACTS["trauma"],
}


class FunctionHandler:
    """Static dispatch table from tool name to handler coroutine."""

    def __init__(self, data_store: HospitalDataStore):
        self.data_store = data_store
        self.function_registry: Dict[str, HandlerFunc] = {
            "search_doctors": self.search_doctors,
            "get_departments": self.get_departments,
            "get_hospital_locations": self.get_hospital_locations,
            "get_contact_details": self.get_contact_details,
            "check_doctor_availability": self.check_doctor_availability,
            "emergency_protocol": self.emergency_protocol,
            "transfer_to_operator": self.transfer_to_operator,
            "search_hospital_info": self.search_hospital_info,
        }

    def validate_tools(self, tools: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        """
        Check that every declared tool has a handler.

        Raises:
            ValueError: If a declared tool name is not in the dispatch table
        """
        declared = [tool["name"] for tool in (FUNCTION_TOOLS if tools is None else tools)]
        missing = [name for name in declared if name not in self.function_registry]
        if missing:
            raise ValueError(f"Declared tools without a handler: {', '.join(missing)}")
        logger.info(f"Validated {len(declared)} function tools")

    async def dispatch(self, name: str, args: Optional[Dict[str, Any]]) -> FunctionResult:
        """
        Execute a function by name. Never raises.

        Args:
            name: Tool name issued by the model
            args: Parsed arguments; anything other than a dict is treated as empty

        Returns:
            Result dict that always carries a non-empty ``message``
        """
        logger.info(f"Function called: {name}")
        handler = self.function_registry.get(name)
        if handler is None:
            logger.error(f"Unknown function: {name}")
            return {"success": False, "message": UNKNOWN_FUNCTION_MESSAGE}

        if not isinstance(args, dict):
            args = {}
        try:
            result = await handler(args)
        except Exception as e:
            logger.error(f"Error handling function {name}: {e}", exc_info=True)
            return {"success": False, "message": HANDLER_ERROR_MESSAGE}

        if not result.get("message"):
            result["message"] = HANDLER_ERROR_MESSAGE
        return result

    async def search_doctors(self, args: Dict[str, Any]) -> FunctionResult:
        specialization = args.get("specialization")
        doctor_name = args.get("doctorName")
        branch = args.get("locationBranch")
        logger.info(
            f"Searching doctors: specialization={specialization}, name={doctor_name}, branch={branch}"
        )
        try:
            location_id = None
            if branch:
                location = await self.data_store.get_hospital_location_by_branch(branch)
                location_id = location["id"] if location else None

            doctors = await self.data_store.get_doctors(
                specialization=specialization,
                doctor_name=doctor_name,
                location_id=location_id,
                is_available=True,
            )
            if not doctors:
                return {
                    "success": False,
                    "message": "No doctors found matching your criteria. "
                    "Would you like me to check our general physician availability?",
                }

            lines = []
            for doc in doctors:
                department = f" in {doc['department_name']}" if doc.get("department_name") else ""
                location = f" at {doc['branch']}" if doc.get("branch") else ""
                fee = doc.get("consultation_fee") or "Not specified"
                lines.append(
                    f"Dr. {doc['name']}, {doc.get('specialization')}{department}{location}. "
                    f"Consultation fee: ₹{fee}"
                )
            return {
                "success": True,
                "count": len(doctors),
                "doctors": doctors,
                "message": f"I found {len(doctors)} doctor(s):\n" + "\n".join(lines),
            }
        except Exception as e:
            logger.error(f"Error in search_doctors: {e}")
            return {
                "success": False,
                "message": "I'm having trouble accessing doctor information right now. "
                "Let me connect you to our appointments desk.",
            }

    async def get_departments(self, args: Dict[str, Any]) -> FunctionResult:
        location_id = args.get("locationId")
        logger.info(f"Getting departments list: locationId={location_id}")
        try:
            departments = await self.data_store.get_departments(location_id)
            if not departments:
                return {
                    "success": False,
                    "message": "I couldn't retrieve department information at the moment. "
                    "Would you like me to connect you to our main desk?",
                }

            lines = []
            for dept in departments:
                floor = f" (Floor {dept['floor_number']})" if dept.get("floor_number") else ""
                services = (
                    f" Services: {', '.join(dept['services'])}" if dept.get("services") else ""
                )
                lines.append(f"{dept['name']}{floor}.{services}")
            return {
                "success": True,
                "count": len(departments),
                "departments": departments,
                "message": f"We have {len(departments)} departments:\n" + "\n".join(lines),
            }
        except Exception as e:
            logger.error(f"Error in get_departments: {e}")
            return {
                "success": False,
                "message": "I'm having trouble accessing department information. "
                "Let me transfer you to our main desk.",
            }

    async def get_hospital_locations(self, args: Dict[str, Any]) -> FunctionResult:
        branch = args.get("branch")
        logger.info(f"Getting hospital locations: branch={branch}")
        try:
            if branch:
                location = await self.data_store.get_hospital_location_by_branch(branch)
                locations = [location] if location else []
            else:
                locations = await self.data_store.get_hospital_locations()

            if not locations:
                return {
                    "success": False,
                    "message": "I couldn't find that location. Our main hospital is in Bandra West, "
                    "Mumbai. Would you like me to connect you to our front desk?",
                }

            blocks = []
            for loc in locations:
                block = (
                    f"{loc['name']} - {loc.get('branch')}\n"
                    f"Address: {loc.get('address')}, {loc.get('city')}\n"
                    f"Phone: {loc.get('phone_number')}"
                )
                timings = loc.get("timings")
                if timings:
                    block += (
                        f"\nOPD: {timings.get('opd') or '9 AM - 5 PM'}, "
                        f"Emergency: {timings.get('emergency') or '24/7'}"
                    )
                blocks.append(block)
            return {
                "success": True,
                "count": len(locations),
                "locations": locations,
                "message": "\n\n".join(blocks),
            }
        except Exception as e:
            logger.error(f"Error in get_hospital_locations: {e}")
            return {
                "success": False,
                "message": "Our main hospital is at Bandra West, Mumbai. For the exact address, "
                "let me transfer you to our front desk.",
            }

    async def get_contact_details(self, args: Dict[str, Any]) -> FunctionResult:
        category = args.get("category")
        logger.info(f"Getting contact details: category={category}")
        try:
            contacts = await self.data_store.get_contact_details(category)
            if not contacts:
                return {
                    "success": False,
                    "message": "Let me transfer you to our main reception who can provide "
                    "the contact details you need.",
                }

            blocks = []
            for contact in contacts:
                department = (
                    f"{contact['department_name']} - " if contact.get("department_name") else ""
                )
                extension = f" (Ext: {contact['extension']})" if contact.get("extension") else ""
                hours = (
                    f"\nAvailable: {contact['available_hours']}"
                    if contact.get("available_hours")
                    else ""
                )
                blocks.append(
                    f"{department}{contact['category']}\n"
                    f"Phone: {contact['phone_number']}{extension}{hours}"
                )
            return {
                "success": True,
                "count": len(contacts),
                "contacts": contacts,
                "message": "\n\n".join(blocks),
            }
        except Exception as e:
            logger.error(f"Error in get_contact_details: {e}")
            return {
                "success": False,
                "message": "For all inquiries, you can reach our main desk at "
                f"{EMERGENCY_CONTACTS['main']}.",
            }

    async def check_doctor_availability(self, args: Dict[str, Any]) -> FunctionResult:
        doctor_id = args.get("doctorId")
        day_of_week = args.get("dayOfWeek")
        logger.info(f"Checking doctor availability: doctorId={doctor_id}, day={day_of_week}")
        try:
            if day_of_week is not None:
                day_of_week = int(day_of_week)
            slots = await self.data_store.get_doctor_availability(doctor_id, day_of_week)
            if not slots:
                return {
                    "success": False,
                    "message": "I couldn't find availability information for this doctor. "
                    "Let me connect you to appointments for assistance.",
                }

            schedule = []
            for slot in slots:
                location = f" at {slot['branch']}" if slot.get("branch") else ""
                schedule.append(
                    f"{DAY_NAMES[slot['day_of_week']]}: "
                    f"{slot['start_time']} - {slot['end_time']}{location}"
                )
            return {
                "success": True,
                "availability": slots,
                "message": "Doctor's availability:\n"
                + "\n".join(schedule)
                + "\n\nWould you like me to help you book an appointment?",
            }
        except Exception as e:
            logger.error(f"Error in check_doctor_availability: {e}")
            return {
                "success": False,
                "message": "I'm having trouble checking availability. "
                "Let me transfer you to our appointments desk.",
            }

    async def emergency_protocol(self, args: Dict[str, Any]) -> FunctionResult:
        emergency_type = args.get("emergencyType")
        caller_phone = args.get("callerPhone")
        logger.warning(
            f"EMERGENCY PROTOCOL ACTIVATED: type={emergency_type}, phone={caller_phone}"
        )
        contact_number = EMERGENCY_TYPE_CONTACTS.get(emergency_type) or EMERGENCY_CONTACTS["main"]
        return {
            "success": True,
            "emergency": True,
            "emergencyType": emergency_type,
            "contactNumber": contact_number,
            "transferTo": contact_number,
            "action": ACTION_TRANSFER_EMERGENCY,
            "message": "This is an emergency situation. I'm immediately connecting you to our "
            "emergency department. Please stay on the line.",
        }

    async def transfer_to_operator(self, args: Dict[str, Any]) -> FunctionResult:
        reason = args.get("reason")
        department = args.get("department")
        logger.info(f"Transfer requested: reason={reason}, department={department}")
        return {
            "success": True,
            "action": ACTION_TRANSFER_OPERATOR,
            "department": department or "General",
            "reason": reason,
            "message": f"I understand. Let me transfer you to {department or 'our operator'} "
            "who can better assist you. Please hold.",
        }

    async def search_hospital_info(self, args: Dict[str, Any]) -> FunctionResult:
        query = (args.get("query") or "").strip()
        logger.info(f"Searching hospital info: query={query}")
        not_found = {
            "success": False,
            "message": "I couldn't find specific information about that. "
            "Would you like me to connect you to our information desk?",
        }
        if not query:
            return not_found
        try:
            results = await self.data_store.search_hospital_data(query)
            matching_info: List[Dict[str, Any]] = results.get("info", [])
            departments = results.get("departments", [])
            doctors = results.get("doctors", [])
            if not (matching_info or departments or doctors):
                return not_found

            response = "\n\n".join(f"{item['title']}: {item['content']}" for item in matching_info)
            if departments:
                names = ", ".join(dept["name"] for dept in departments)
                response += f"\n\nRelated departments: {names}"
            return {
                "success": True,
                "info": matching_info,
                "relatedDoctors": doctors,
                "relatedDepartments": departments,
                "message": response.strip()
                or "I found some related information. How can I help you further?",
            }
        except Exception as e:
            logger.error(f"Error in search_hospital_info: {e}")
            return {
                "success": False,
                "message": "I'm having trouble searching that information. "
                "Let me connect you to our information desk.",
            }
