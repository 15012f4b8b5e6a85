"""
FastAPI server for the hospital voice assistant.

This module initializes the FastAPI application that answers the hospital's
Exotel phone line. Exotel webhooks connect each call to the media stream
WebSocket, where a bridge relays audio to and from the OpenAI Realtime API.
The application also exposes a small JSON API over live conversations.

The process-wide WebSocketManager is created here; the lifespan starts the stale
conversation sweep and ends every live conversation at shutdown.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket
from pydantic import BaseModel

from voicebridge.callbacks import router as phone_router
from voicebridge.config import settings
from voicebridge.config.constants import CONVERSATION_TYPE_WEB, STATUS_COMPLETED
from voicebridge.config.logging_config import configure_logging
from voicebridge.config.prompts import HOSPITAL_INFO
from voicebridge.webhooks import router as exotel_router
from voicebridge.websocket_manager import WebSocketManager

# Configure logging
logger = configure_logging()

SERVICE_NAME = "hospital-voice-bridge"
VERSION = "1.0.0"

# Create the session manager shared by every call
websocket_manager = WebSocketManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await websocket_manager.startup()
    logger.info(f"{HOSPITAL_INFO['name']} voice assistant started")
    yield
    await websocket_manager.shutdown()
    logger.info("Voice assistant stopped")


# Create FastAPI application
app = FastAPI(
    title="Hospital Voice Bridge",
    description="Integration between Exotel media streams and OpenAI Realtime API",
    version=VERSION,
    lifespan=lifespan,
)
app.state.websocket_manager = websocket_manager
app.include_router(exotel_router)
app.include_router(phone_router)


class EndConversationRequest(BaseModel):
    status: str = STATUS_COMPLETED


class WebVoiceSessionRequest(BaseModel):
    phone_number: Optional[str] = None


class WebVoiceEndRequest(BaseModel):
    session_id: Optional[str] = None


@app.websocket("/exotel-media-stream")
async def exotel_media_stream(
    websocket: WebSocket,
    callSid: Optional[str] = None,
    phoneNumber: Optional[str] = None,
):
    """WebSocket endpoint for Exotel media streams.

    Exotel connects here after ``/exotel/incoming-call`` answers with a
    ``<Stream>``. The call identifier and caller number arrive as query
    parameters, or later in the stream's ``start`` event.
    """
    await websocket_manager.handle_websocket(websocket, callSid, phoneNumber)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information indicating the server is operational.
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "hospital": HOSPITAL_INFO["name"],
        "active_conversations": len(websocket_manager.conversation_manager),
        "openai_api_key_configured": bool(settings.OPENAI_API_KEY),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API."""
    return {
        "name": "Hospital Voice Bridge",
        "description": "Integration between Exotel media streams and OpenAI Realtime API",
        "hospital": HOSPITAL_INFO["name"],
        "version": VERSION,
        "endpoints": {
            "/exotel-media-stream": "WebSocket endpoint for Exotel media streams",
            "/exotel/*": "Exotel webhooks",
            "/api/phone/*": "Outbound phone callbacks",
            "/api/web-voice/*": "Browser voice sessions",
            "/api/conversations": "Live conversation API",
            "/health": "Health check endpoint",
        },
    }


@app.get("/api/conversations/active")
async def active_conversations():
    conversations = websocket_manager.conversation_manager.get_active_conversations()
    return {"count": len(conversations), "conversations": conversations}


@app.get("/api/conversations/{identifier}")
async def conversation_stats(identifier: str):
    stats = websocket_manager.get_active_session_stats(identifier)
    if stats is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return stats


@app.post("/api/conversations/{identifier}/end")
async def end_conversation(identifier: str, body: Optional[EndConversationRequest] = None):
    status = body.status if body else STATUS_COMPLETED
    result = await websocket_manager.end_session(identifier, status)
    if result is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return result


@app.post("/api/admin/cleanup")
async def cleanup_stale_conversations():
    cleaned = await websocket_manager.sweep_stale()
    return {"message": f"Cleaned up {cleaned} stale conversations", "count": cleaned}


@app.post("/api/web-voice/session")
async def create_web_voice_session(body: Optional[WebVoiceSessionRequest] = None):
    """Register a browser voice session; the browser talks to the model itself."""
    conversation = await websocket_manager.conversation_manager.create_conversation(
        phone_number=body.phone_number if body else None,
        conversation_type=CONVERSATION_TYPE_WEB,
    )
    logger.info(f"Web voice session created: {conversation.session_id}")
    return {
        "session_id": conversation.session_id,
        "conversation_id": conversation.id,
        "model": settings.OPENAI_REALTIME_MODEL,
    }


@app.post("/api/web-voice/end")
async def end_web_voice_session(body: Optional[WebVoiceEndRequest] = None):
    if body is None or not body.session_id:
        raise HTTPException(status_code=400, detail="Session ID required")
    result = await websocket_manager.end_session(body.session_id, STATUS_COMPLETED)
    if result is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True, **result}


@app.get("/api/web-voice/status/{session_id}")
async def web_voice_status(session_id: str):
    stats = websocket_manager.get_active_session_stats(session_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {**stats, "session_id": session_id, "status": "active"}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.HOST}:{settings.PORT}")
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        websocket_ping_interval=5,
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        websocket_ping_timeout=20,
        http="h11",
    )
