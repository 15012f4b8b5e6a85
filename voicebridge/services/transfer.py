"""
Call transfer through the Exotel call-control API.

Exotel cannot be told the destination number directly. A transfer redirects
the live call to one of our own webhooks (``/exotel/transfer-call`` or
``/exotel/emergency-transfer``) and that webhook answers with the ``<Dial>``.
Nothing here raises: a failed transfer leaves the caller on the AI line.
"""

import logging
from typing import Dict, Optional

import httpx

from voicebridge.config.constants import LOGGER_NAME
from voicebridge.config.prompts import (
    DEPARTMENT_CONTACT_KEYWORDS,
    EMERGENCY_CONTACTS,
    MAIN_HOSPITAL_NUMBER,
)
from voicebridge.services.data_store import HospitalDataStore
from voicebridge.services.exotel_client import ConfigurationError, ExotelAPIError, ExotelClient

logger = logging.getLogger(LOGGER_NAME)

# Form fields Exotel expects when redirecting an in-progress call
TRANSFER_CALL_TYPE = "trans"
TRANSFER_TIME_LIMIT = "14400"
TRANSFER_TIMEOUT = "30"


class TransferService:
    """
    Redirects live calls to a transfer webhook.

    Args:
        data_store: Contact directory used to resolve department numbers
        transport: Optional httpx transport, used by tests to stub the API
        exotel: Call-control client; built over ``transport`` when omitted
    """

    def __init__(
        self,
        data_store: HospitalDataStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        exotel: Optional[ExotelClient] = None,
    ):
        self.data_store = data_store
        self.exotel = exotel or ExotelClient(transport=transport)

    async def transfer_call(self, call_sid: str, webhook_path: str, params: Dict[str, str]) -> bool:
        """
        Point a live call at a transfer webhook.

        Args:
            call_sid: Exotel call identifier
            webhook_path: Path of the webhook that will answer with the ``<Dial>``
            params: Query parameters for that webhook

        Returns:
            True if Exotel accepted the redirect, False otherwise
        """
        try:
            self.exotel.require_credentials()
            self.exotel.require_public_url()
            if not call_sid:
                raise ConfigurationError("No call identifier - cannot transfer call")

            form = {
                "Url": self.exotel.public_url(webhook_path, params),
                "CallType": TRANSFER_CALL_TYPE,
                "TimeLimit": TRANSFER_TIME_LIMIT,
                "TimeOut": TRANSFER_TIMEOUT,
            }
            await self.exotel.request("POST", f"Calls/{call_sid}", data=form)
            return True
        except ConfigurationError as e:
            logger.error(f"Cannot transfer call {call_sid}: {e}")
        except ExotelAPIError as e:
            logger.error(f"Transfer rejected for call {call_sid}: {e} {e.body[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"Transfer request failed for call {call_sid}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error transferring call {call_sid}: {e}", exc_info=True)
        return False

    async def execute_emergency_transfer(
        self, call_sid: str, transfer_number: str, emergency_type: Optional[str]
    ) -> bool:
        """Redirect the call to the emergency hand-off webhook."""
        logger.warning(
            f"Executing EMERGENCY transfer: {call_sid} to {transfer_number} (Type: {emergency_type})"
        )
        ok = await self.transfer_call(
            call_sid,
            "/exotel/emergency-transfer",
            {
                "emergencyNumber": transfer_number,
                "emergencyType": emergency_type or "general",
            },
        )
        if ok:
            logger.warning(f"Emergency transfer executed successfully: {call_sid} -> {transfer_number}")
        return ok

    async def execute_operator_transfer(
        self, call_sid: str, department: Optional[str], reason: Optional[str]
    ) -> bool:
        """Resolve the department number and redirect the call to the operator webhook."""
        department = department or "General"
        logger.info(f"Executing operator transfer: {call_sid} to {department} (Reason: {reason})")
        transfer_number = await self.resolve_department_number(department)
        ok = await self.transfer_call(
            call_sid,
            "/exotel/transfer-call",
            {"transferTo": transfer_number, "department": department},
        )
        if ok:
            logger.info(
                f"Operator transfer executed successfully: {call_sid} -> {department} ({transfer_number})"
            )
        return ok

    async def resolve_department_number(self, department: Optional[str]) -> str:
        """
        Phone number for a department name. Never returns an empty value.

        Lookup order: the contact directory, then the department keyword table,
        then the main hospital number.
        """
        if department:
            try:
                contacts = await self.data_store.get_contact_details(department)
            except Exception as e:
                logger.error(f"Error getting department contact number: {e}")
                contacts = []
            for contact in contacts:
                if contact.get("phone_number"):
                    logger.info(
                        f"Found department contact in directory: {department} -> {contact['phone_number']}"
                    )
                    return contact["phone_number"]

            department_lower = department.lower()
            for keywords, contact_key in DEPARTMENT_CONTACT_KEYWORDS:
                if any(keyword in department_lower for keyword in keywords):
                    logger.info(f"Using {contact_key} contact for department: {department}")
                    return EMERGENCY_CONTACTS[contact_key]

        logger.warning(f"No specific contact found for department: {department}, using main number")
        return MAIN_HOSPITAL_NUMBER
