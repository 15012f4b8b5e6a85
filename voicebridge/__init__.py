"""
Hospital Voice Bridge - Exotel to OpenAI Realtime API

This application answers a hospital's phone line with a real-time speech-to-speech
assistant. Exotel streams each call's audio over a WebSocket; the bridge relays it
to OpenAI's Realtime API and plays the model's audio back to the caller.

Architecture Overview:
- FastAPI server exposing the Exotel media stream WebSocket and call webhooks
- OpenAI Realtime API integration for model inference and tool calls
- Function dispatch over hospital reference data (doctors, departments, contacts)
- Call transfers through the Exotel call-control API
- A conversation registry with a periodic sweep of stale conversations

Key Components:
- bot: The Realtime client, the Exotel bridge and the function handlers
- config: Constants, settings, logging setup and the assistant persona
- models: Wire schemas and conversation records
- services: The hospital data store and the transfer service
- webhooks: XML responders for Exotel's call flow
- websocket_manager: Creates a bridge for each media stream

Getting Started:
1. Set OPENAI_API_KEY, and EXOTEL_SID / EXOTEL_API_KEY / EXOTEL_API_TOKEN / PUBLIC_URL
   for transfers.
2. Start the server:
   ```bash
   python run.py
   ```
3. Point the Exotel applet at ``https://your-host/exotel/incoming-call``.
"""
