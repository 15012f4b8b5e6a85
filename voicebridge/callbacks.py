"""
Phone callback API.

A web visitor leaves a number and the hospital calls them back. The callback is
placed through Exotel and then behaves like any inbound call.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from voicebridge.config.constants import LOGGER_NAME
from voicebridge.services.exotel_client import ConfigurationError, ExotelAPIError
from voicebridge.services.phone_callback import PhoneCallbackService
from voicebridge.webhooks import TERMINAL_CALL_STATUSES, request_params

logger = logging.getLogger(LOGGER_NAME)

router = APIRouter(prefix="/api/phone", tags=["phone"])


class InitiateCallRequest(BaseModel):
    phone_number: Optional[str] = None
    from_web: bool = False


class CancelCallRequest(BaseModel):
    call_sid: Optional[str] = None


def callback_service(request: Request) -> PhoneCallbackService:
    return request.app.state.websocket_manager.phone_callback_service


@router.post("/initiate-call")
async def initiate_call(request: Request, body: Optional[InitiateCallRequest] = None):
    if body is None or not body.phone_number:
        raise HTTPException(status_code=400, detail="Phone number is required")
    try:
        result = await callback_service(request).initiate_call(body.phone_number, body.from_web)
    except ConfigurationError as e:
        logger.warning(f"Callback requested but Exotel is not configured: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except (ExotelAPIError, httpx.HTTPError) as e:
        logger.error(f"Error initiating Exotel callback: {e}")
        raise HTTPException(status_code=500, detail="Failed to initiate call")
    return {
        "success": True,
        **result,
        "message": "Call initiated successfully. You should receive a call shortly.",
    }


@router.get("/call-status/{call_sid}")
async def call_status(call_sid: str, request: Request):
    service = callback_service(request)
    if not service.exotel.configured:
        raise HTTPException(status_code=503, detail="Exotel is not configured")
    try:
        return await service.get_call_status(call_sid)
    except (ExotelAPIError, httpx.HTTPError) as e:
        logger.error(f"Error fetching Exotel call status: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch call status")


@router.post("/cancel-call")
async def cancel_call(request: Request, body: Optional[CancelCallRequest] = None):
    if body is None or not body.call_sid:
        raise HTTPException(status_code=400, detail="Call SID is required")
    service = callback_service(request)
    if not service.exotel.configured:
        raise HTTPException(status_code=503, detail="Exotel is not configured")
    try:
        await service.cancel_call(body.call_sid)
    except (ExotelAPIError, httpx.HTTPError) as e:
        logger.error(f"Error cancelling Exotel call: {e}")
        raise HTTPException(status_code=500, detail="Failed to cancel call")
    return {"success": True, "message": "Call cancelled successfully"}


@router.get("/active-calls")
async def active_calls(request: Request):
    calls = callback_service(request).get_active_calls()
    return {"count": len(calls), "calls": calls}


@router.post("/status-webhook")
async def status_webhook(request: Request) -> Response:
    """Exotel status callback for calls we placed. Always answers 200."""
    params = await request_params(request)
    call_sid = params.get("CallSid")
    status = params.get("Status")
    logger.info(f"Exotel call status update: {call_sid} - {status}")
    callback_service(request).update_status(call_sid, status)

    conversation_status = TERMINAL_CALL_STATUSES.get((status or "").lower())
    if conversation_status and call_sid:
        await request.app.state.websocket_manager.end_session(call_sid, conversation_status)
    return Response(status_code=200)


@router.get("/health")
async def health(request: Request):
    service = callback_service(request)
    return {
        "status": "healthy",
        "exotel_configured": service.exotel.configured,
        "active_calls": len(service.active_calls),
    }
