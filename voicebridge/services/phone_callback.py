"""
Outbound callbacks: the hospital rings a caller back through Exotel.

Exotel dials the number and, once answered, fetches ``/exotel/incoming-call``
like any inbound call, so the media stream and bridge are the same. The
conversation record is created as soon as Exotel confirms the dial, keyed by
the call identifier it returns.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from voicebridge.config import settings
from voicebridge.config.constants import (
    CONVERSATION_TYPE_PHONE,
    LOGGER_NAME,
    STATUS_CANCELLED,
)
from voicebridge.models.conversation import ConversationManager
from voicebridge.services.exotel_client import ExotelAPIError, ExotelClient

logger = logging.getLogger(LOGGER_NAME)

# Form fields for Calls/connect
CALLBACK_CALL_TYPE = "trans"
CALLBACK_TIME_LIMIT = "14400"
CALLBACK_TIMEOUT = "30"

TERMINAL_CALL_STATUSES = {"completed", "failed", "busy", "no-answer", "canceled"}

# Finished calls stay visible briefly so a polling client sees the final status
FINISHED_CALL_RETENTION_SECONDS = 60
STALE_CALL_MINUTES = 5


class PhoneCallbackService:
    """
    Places callbacks and tracks the calls it placed.

    Args:
        registry: Conversation registry; a record is created per confirmed dial
        exotel: Call-control client
    """

    def __init__(self, registry: ConversationManager, exotel: Optional[ExotelClient] = None):
        self.registry = registry
        self.exotel = exotel or ExotelClient()
        self.active_calls: Dict[str, Dict[str, Any]] = {}

    async def initiate_call(self, phone_number: str, from_web: bool = False) -> Dict[str, Any]:
        """
        Ask Exotel to ring ``phone_number`` and connect it to the assistant.

        Raises:
            ConfigurationError: Credentials or PUBLIC_URL missing; nothing is sent
            ExotelAPIError: Exotel rejected the request or returned no call identifier
            httpx.HTTPError: The request could not be completed
        """
        self.exotel.require_credentials()
        self.exotel.require_public_url()

        logger.info(f"Initiating Exotel callback to: {phone_number} (from_web: {from_web})")
        form = {
            "From": settings.EXOTEL_PHONE_NUMBER or "",
            "To": phone_number,
            "CallerId": settings.EXOTEL_PHONE_NUMBER or "",
            "Url": self.exotel.public_url("/exotel/incoming-call"),
            "StatusCallback": self.exotel.public_url("/api/phone/status-webhook"),
            "TimeLimit": CALLBACK_TIME_LIMIT,
            "TimeOut": CALLBACK_TIMEOUT,
            "CallType": CALLBACK_CALL_TYPE,
        }
        result = await self.exotel.request_json("POST", "Calls/connect.json", data=form)
        call = result.get("Call") or {}
        call_sid = call.get("Sid")
        if not call_sid:
            raise ExotelAPIError(200, "No Call SID returned from Exotel")

        status = call.get("Status") or "initiated"
        self.active_calls[call_sid] = {
            "sid": call_sid,
            "to": phone_number,
            "status": status,
            "from_web": from_web,
            "initiated_at": datetime.now(timezone.utc),
        }
        await self.registry.create_conversation(
            call_sid=call_sid,
            phone_number=phone_number,
            conversation_type=CONVERSATION_TYPE_PHONE,
        )
        logger.info(f"Exotel call initiated: {call_sid} to {phone_number}")
        return {"call_sid": call_sid, "status": status, "to": phone_number}

    async def get_call_status(self, call_sid: str) -> Dict[str, Any]:
        """Fetch the call's current state from Exotel and refresh the local copy."""
        result = await self.exotel.request_json("GET", f"Calls/{call_sid}.json")
        call = result.get("Call") or {}
        if call_sid in self.active_calls and call.get("Status"):
            self.active_calls[call_sid]["status"] = call["Status"]
        return {
            "call_sid": call.get("Sid", call_sid),
            "status": call.get("Status"),
            "to": call.get("To"),
            "from": call.get("From"),
            "direction": call.get("Direction"),
            "duration": call.get("Duration"),
            "date_created": call.get("DateCreated"),
            "date_updated": call.get("DateUpdated"),
        }

    async def cancel_call(self, call_sid: str) -> None:
        """Hang up a call and end its conversation as ``cancelled``."""
        logger.info(f"Cancelling Exotel call: {call_sid}")
        await self.exotel.request("POST", f"Calls/{call_sid}", data={"Status": "completed"})
        self.active_calls.pop(call_sid, None)
        await self.registry.end_conversation(call_sid, STATUS_CANCELLED)

    def update_status(self, call_sid: Optional[str], status: Optional[str]) -> None:
        """Record a status callback. Finished calls are forgotten after a short delay."""
        call = self.active_calls.get(call_sid) if call_sid else None
        if call is None:
            return
        call["status"] = status
        if (status or "").lower() in TERMINAL_CALL_STATUSES:
            asyncio.get_running_loop().call_later(
                FINISHED_CALL_RETENTION_SECONDS, self.active_calls.pop, call_sid, None
            )

    def prune_stale(self, max_age_minutes: int = STALE_CALL_MINUTES) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)
        stale = [sid for sid, call in self.active_calls.items() if call["initiated_at"] < cutoff]
        for sid in stale:
            logger.info(f"Removing stale call from cache: {sid}")
            del self.active_calls[sid]
        return len(stale)

    def get_active_calls(self) -> List[Dict[str, Any]]:
        self.prune_stale()
        return [
            {**call, "initiated_at": call["initiated_at"].isoformat()}
            for call in self.active_calls.values()
        ]
