"""
Bot module connecting Exotel media streams to the OpenAI Realtime API.

Key components:
- RealtimeClient: JSON event client for one Realtime API WebSocket.
- ExotelRealtimeBridge: Per-call bridge relaying audio and transcripts, and
  running tool calls and transfers.
- FunctionHandler: Dispatch table for the tools declared to the model.
"""

from voicebridge.bot.exotel_realtime_bridge import BridgeState, ExotelRealtimeBridge
from voicebridge.bot.function_handlers import FunctionHandler
from voicebridge.bot.realtime_api import RealtimeClient

__all__ = ["BridgeState", "ExotelRealtimeBridge", "FunctionHandler", "RealtimeClient"]
