"""
Exotel webhook responders.

Exotel calls these over HTTP and expects an XML document telling it what to do
with the call: connect it to our media stream, dial a transfer destination,
or apologise and hang up.
Transfer Execution redirects live calls to the two transfer endpoints here.
"""

import logging
from typing import Dict, Optional
from urllib.parse import urlencode
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, Request, Response

from voicebridge.config.constants import (
    CONVERSATION_TYPE_PHONE,
    LOGGER_NAME,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from voicebridge.config.prompts import HOSPITAL_INFO, MAIN_HOSPITAL_NUMBER

logger = logging.getLogger(LOGGER_NAME)

router = APIRouter(prefix="/exotel", tags=["exotel"])

XML_MEDIA_TYPE = "application/xml"

# Exotel call statuses that end a call, mapped to conversation statuses
TERMINAL_CALL_STATUSES = {
    "completed": STATUS_COMPLETED,
    "failed": STATUS_FAILED,
    "busy": STATUS_FAILED,
    "no-answer": STATUS_FAILED,
    "canceled": STATUS_CANCELLED,
}


def xml_response(*verbs: str) -> Response:
    body = "\n".join(f"    {verb}" for verb in verbs)
    content = f'<?xml version="1.0" encoding="UTF-8"?>\n<Response>\n{body}\n</Response>'
    return Response(content=content, media_type=XML_MEDIA_TYPE)


def say(text: str) -> str:
    return f"<Say>{escape(text)}</Say>"


def dial(number: str) -> str:
    return f"<Dial><Number>{escape(number)}</Number></Dial>"


def stream_connect(request: Request, call_sid: Optional[str], caller: Optional[str]) -> str:
    """``<Connect><Stream>`` verb pointing at our media stream WebSocket."""
    host = request.headers.get("host", request.url.netloc)
    query = urlencode({k: v for k, v in (("callSid", call_sid), ("phoneNumber", caller)) if v})
    stream_url = f"wss://{host}/exotel-media-stream?{query}"
    return f"<Connect><Stream url={quoteattr(stream_url)} /></Connect>"


async def request_params(request: Request) -> Dict[str, str]:
    """Query string and form body merged; Exotel uses both depending on the applet."""
    params = dict(request.query_params)
    if request.method == "POST":
        params.update(dict(await request.form()))
    return params


@router.post("/incoming-call")
async def incoming_call(request: Request) -> Response:
    """Register the call and connect it to the media stream WebSocket.

    An outbound callback already has a record from the dial confirmation; it is
    reused rather than replaced.
    """
    params = await request_params(request)
    call_sid = params.get("CallSid")
    caller = params.get("From")
    logger.info(f"Exotel incoming call: {call_sid} from {caller} to {params.get('To')}")

    registry = request.app.state.websocket_manager.conversation_manager
    try:
        if registry.get_conversation(call_sid) is None:
            await registry.create_conversation(
                call_sid=call_sid,
                phone_number=caller,
                conversation_type=CONVERSATION_TYPE_PHONE,
            )
    except Exception as e:
        logger.error(f"Error handling Exotel incoming call: {e}", exc_info=True)
        return xml_response(
            say("We are experiencing technical difficulties. Please try again later."),
            "<Hangup/>",
        )

    logger.info(f"Exotel call connected to media stream: {call_sid}")
    return xml_response(
        say(f"Welcome to {HOSPITAL_INFO['short_name']} AI Assistant. Please wait while we connect you."),
        stream_connect(request, call_sid, caller),
    )


@router.api_route("/passthru", methods=["GET", "POST"])
async def passthru(request: Request) -> Response:
    """Passthru applet for custom call flows.

    Nothing is registered here; the bridge creates the record and learns the
    call details from the stream.
    """
    params = await request_params(request)
    call_sid = params.get("CallSid")
    logger.info(f"Exotel passthru: {call_sid}, Digits: {params.get('Digits')}")
    return xml_response(
        say("Processing your request."),
        stream_connect(request, call_sid, params.get("From")),
    )


@router.post("/fallback")
async def fallback(request: Request) -> Response:
    """Exotel calls this when our primary flow fails; apologise and hang up."""
    params = await request_params(request)
    logger.error(f"Exotel fallback triggered for call: {params.get('CallSid')}")
    return xml_response(
        say(
            "We apologize for the inconvenience. "
            "Please call back later or contact our main office directly."
        ),
        "<Hangup/>",
    )


@router.post("/call-status")
async def call_status(request: Request) -> Response:
    """Status callback. Always answers 200, including for calls already cleaned up."""
    params = await request_params(request)
    call_sid = params.get("CallSid")
    status = (params.get("Status") or params.get("CallStatus") or "").lower()
    logger.info(f"Exotel call status update: {call_sid} - {status}")

    conversation_status = TERMINAL_CALL_STATUSES.get(status)
    if conversation_status and call_sid:
        manager = request.app.state.websocket_manager
        result = await manager.end_session(call_sid, conversation_status)
        if result:
            logger.info(
                f"Exotel call ended: {call_sid} - Duration: "
                f"{params.get('Duration') or params.get('DialCallDuration') or result['duration_seconds']}s"
            )
    return Response(status_code=200)


@router.api_route("/transfer-call", methods=["GET", "POST"])
async def transfer_call(request: Request) -> Response:
    """Second hop of an operator transfer: announce and dial the department."""
    params = await request_params(request)
    transfer_to = params.get("transferTo") or MAIN_HOSPITAL_NUMBER
    department = params.get("department") or "our operator"
    logger.info(f"Exotel transfer request: {params.get('CallSid')} to {transfer_to} ({department})")
    return xml_response(
        say(f"Please hold while I transfer your call to {department}."),
        dial(transfer_to),
    )


@router.api_route("/emergency-transfer", methods=["GET", "POST"])
async def emergency_transfer(request: Request) -> Response:
    """Second hop of an emergency transfer: dial the emergency line immediately."""
    params = await request_params(request)
    emergency_number = params.get("emergencyNumber") or MAIN_HOSPITAL_NUMBER
    logger.warning(
        f"EXOTEL EMERGENCY TRANSFER: {params.get('CallSid')} to {emergency_number} "
        f"({params.get('emergencyType')})"
    )
    return xml_response(
        say(
            "This is an emergency. Connecting you immediately to emergency services. "
            "Please stay on the line."
        ),
        dial(emergency_number),
    )
